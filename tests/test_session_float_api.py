from cxdesk import models
from tests.factories import open_session, seed_order, stack_for

API = "/api"


def _create_session(client):
    resp = client.post(f"{API}/cx-sessions")
    assert resp.status_code == 201, resp.text
    return resp.json()["session"]["id"]


def _start_open(client, session_id):
    resp = client.post(
        f"{API}/cx-sessions/{session_id}/float/start", json={"action": "START_OPEN"}
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _repository(body, repository_id):
    return next(r for r in body["repositories"] if r["id"] == repository_id)


def test_health_is_public_and_stable(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["environment"] == "test"
    assert {"service", "time", "uptime_seconds", "version"} <= set(body)


def test_create_session_reports_provisioning(client, seed):
    resp = client.post(f"{API}/cx-sessions")

    assert resp.status_code == 201
    body = resp.json()
    assert body["session"]["status"] == "DORMANT"
    assert body["session"]["authorized_user_ids"] == [str(seed.user.id)]
    assert body["provisioning"]["created"] == 7
    assert body["provisioning"]["skipped"] == []


def test_second_session_is_refused_with_structured_error(client):
    first = _create_session(client)

    resp = client.post(f"{API}/cx-sessions")

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "SESSIONS_NOT_CLOSED"
    assert body["open_sessions"] == [{"id": first, "status": "DORMANT"}]
    assert body["detail"]


def test_session_float_groups_by_repository_and_ticker(client, seed):
    session_id = _create_session(client)
    _start_open(client, session_id)

    resp = client.get(f"{API}/cx-sessions/{session_id}/float")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "FLOAT_OPEN_START"
    assert [r["name"] for r in body["repositories"]] == ["Till", "Vault", "Wallet"]

    till = _repository(body, seed.till.id)
    assert till["state"] == "OPEN_START"
    assert till["float_state"] == "OPEN"
    usd = till["currencies"][0]
    assert usd["ticker"] == "USD"
    assert usd["decimal_count"] == 2
    assert usd["confirmed"] is False
    assert [s["denominated_value"] for s in usd["float_stacks"]] == [100, 20, 5]
    assert usd["off_balance"]["result"] == "BALANCED"

    wallet = _repository(body, seed.wallet.id)
    assert wallet["currencies"][0]["decimal_count"] == 8


def test_float_is_not_readable_once_the_close_is_confirmed(client, db, seed):
    session_id = _create_session(client)
    session = db.get(models.CxSession, session_id)
    session.status = models.SessionStatus.FLOAT_CLOSE_COMPLETE
    db.commit()

    resp = client.get(f"{API}/cx-sessions/{session_id}/float")

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "FLOAT_ACCESS_DENIED"
    assert body["status"] == "FLOAT_CLOSE_COMPLETE"
    assert "FLOAT_OPEN_START" in body["allowed_statuses"]


def test_float_requires_session_authorization(client, seed):
    session_id = _create_session(client)
    client.caller["ctx"] = seed.other_ctx

    resp = client.get(f"{API}/cx-sessions/{session_id}/float")

    assert resp.status_code == 403
    assert resp.json()["code"] == "NOT_AUTHORIZED_FOR_SESSION"

    joined = client.post(f"{API}/cx-sessions/{session_id}/join")
    assert joined.status_code == 200
    assert client.get(f"{API}/cx-sessions/{session_id}/float").status_code == 200


def test_patch_float_stack_updates_only_given_fields(client, db, seed):
    session_id = _create_session(client)
    stack = stack_for(db, session_id, seed.till, seed.usd, 20)

    resp = client.patch(f"{API}/float-stacks/{stack.id}", json={"open_count": 12})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["open_count"] == 12
    assert body["close_count"] == 0
    assert body["current_count"] == "12"


def test_patch_float_stack_rejects_bad_counts(client, db, seed):
    session_id = _create_session(client)
    stack = stack_for(db, session_id, seed.till, seed.usd, 20)

    for payload in (
        {"open_count": -1},
        {"close_count": None},
        {"spent_during_session": "5"},
        {"transferred_during_session": 3},
    ):
        resp = client.patch(f"{API}/float-stacks/{stack.id}", json=payload)
        assert resp.status_code == 422, payload

    db.refresh(stack)
    assert stack.open_count == 0


def test_count_then_validate_repository_open(client, db, seed):
    session_id = _create_session(client)
    _start_open(client, session_id)
    stacks = [stack_for(db, session_id, seed.till, seed.usd, v) for v in (100, 20, 5)]
    url = f"{API}/cx-sessions/{session_id}/repositories/{seed.till.id}/float"

    counted = client.put(
        url, json={"stacks": [{"id": s.id, "open_count": 2} for s in stacks]}
    )
    assert counted.status_code == 200, counted.text
    assert [s["open_count"] for s in counted.json()] == [2, 2, 2]

    refused = client.post(f"{url}/validate", json={"action": "VALIDATE_OPEN"})
    assert refused.status_code == 409
    assert refused.json()["code"] == "FLOAT_NOT_CONFIRMED"
    assert sorted(refused.json()["unconfirmed_float_stack_ids"]) == sorted(s.id for s in stacks)

    confirmed_at = "2026-10-19T08:00:00+00:00"
    client.put(
        url,
        json={"stacks": [{"id": s.id, "open_confirmed_dt": confirmed_at} for s in stacks]},
    )
    validated = client.post(f"{url}/validate", json={"action": "VALIDATE_OPEN"})
    assert validated.status_code == 200, validated.text
    assert validated.json()["validated_stacks"] == 3

    repo = client.get(url).json()
    assert repo["state"] == "OPEN_CONFIRMED"
    assert repo["float_state"] == "CURRENT"
    assert repo["currencies"][0]["panel"]["open"] == "250"


def test_repository_update_rejects_stacks_of_other_repositories(client, db, seed):
    session_id = _create_session(client)
    vault_stack = stack_for(db, session_id, seed.vault, seed.usd, 100)

    resp = client.put(
        f"{API}/cx-sessions/{session_id}/repositories/{seed.till.id}/float",
        json={"stacks": [{"id": vault_stack.id, "open_count": 1}]},
    )

    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_skip_count_records_expected_balance(client, db, seed):
    session_id = _create_session(client)
    _start_open(client, session_id)
    carried = stack_for(db, session_id, seed.till, seed.usd, 100)
    carried.last_session_count = 7
    db.commit()

    resp = client.post(
        f"{API}/cx-sessions/{session_id}/repositories/{seed.till.id}/float/skip-count"
    )

    assert resp.status_code == 200, resp.text
    usd = resp.json()["currencies"][0]
    assert usd["confirmed"] is True
    assert [s["open_count"] for s in usd["float_stacks"]] == [7, 0, 0]
    assert usd["off_balance"]["result"] == "BALANCED"


def test_skip_count_needs_a_counting_phase(client, seed):
    session_id = _create_session(client)

    resp = client.post(
        f"{API}/cx-sessions/{session_id}/repositories/{seed.till.id}/float/skip-count"
    )

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "REPOSITORY_NOT_COUNTABLE"
    assert body["float_state"] == "UNAVAILABLE"


def test_swap_endpoint_commits_breakdowns(client, db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_20 = stack_for(db, session.id, seed.vault, seed.usd, 20)
    payload = {
        "inbound_repository_id": seed.till.id,
        "outbound_repository_id": seed.vault.id,
        "ticker": "USD",
        "inbound_sum": "100",
        "outbound_sum": "100",
        "breakdowns": [
            {
                "float_stack_id": till_100.id,
                "denomination_id": till_100.denomination_id,
                "count": "1",
                "direction": "INBOUND",
            },
            {
                "float_stack_id": vault_20.id,
                "denomination_id": vault_20.denomination_id,
                "count": "5",
                "direction": "OUTBOUND",
            },
        ],
    }

    resp = client.post(f"{API}/cx-sessions/{session.id}/swaps", json=payload)

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["swap_value"] == "100"
    assert [b["direction"] for b in body["breakdowns"]] == ["INBOUND", "OUTBOUND"]

    listed = client.get(f"{API}/cx-sessions/{session.id}/swaps").json()
    assert [s["id"] for s in listed] == [body["id"]]
    assert len(listed[0]["breakdowns"]) == 2


def test_swap_endpoint_reports_sum_mismatch(client, db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    payload = {
        "inbound_repository_id": seed.till.id,
        "outbound_repository_id": seed.vault.id,
        "ticker": "USD",
        "inbound_sum": "500",
        "outbound_sum": "500",
        "breakdowns": [
            {
                "float_stack_id": till_100.id,
                "denomination_id": till_100.denomination_id,
                "count": "4",
                "direction": "INBOUND",
            },
            {
                "float_stack_id": vault_100.id,
                "denomination_id": vault_100.denomination_id,
                "count": "5",
                "direction": "OUTBOUND",
            },
        ],
    }

    resp = client.post(f"{API}/cx-sessions/{session.id}/swaps", json=payload)

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "BREAKDOWN_VALIDATION_FAILED"
    assert (body["direction"], body["expected"], body["actual"]) == ("INBOUND", "500", "400")
    assert db.query(models.CurrencySwap).count() == 0


def test_order_breakdowns_commit_and_uncommit_over_http(client, db, seed):
    session = open_session(db, seed)
    order = seed_order(
        db, session, inbound_ticker="USD", inbound_sum="105", inbound_repository_id=seed.till.id
    )
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    till_5 = stack_for(db, session.id, seed.till, seed.usd, 5)
    entries = [
        {
            "float_stack_id": s.id,
            "denomination_id": s.denomination_id,
            "count": "1",
            "direction": "INBOUND",
        }
        for s in (till_100, till_5)
    ]

    committed = client.post(
        f"{API}/breakdowns/commit",
        json={"parent_type": "ORDER", "parent_id": order.id, "breakdowns": entries},
    )
    assert committed.status_code == 200, committed.text
    assert committed.json()["success"] is True

    listed = client.get(
        f"{API}/breakdowns", params={"parent_type": "ORDER", "parent_id": order.id}
    ).json()
    assert [b["status"] for b in listed] == ["COMMITTED", "COMMITTED"]

    reverted = client.post(f"{API}/breakdowns/uncommit", json={"parent_id": order.id})
    assert reverted.status_code == 200
    listed = client.get(
        f"{API}/breakdowns", params={"parent_type": "ORDER", "parent_id": order.id}
    ).json()
    assert [b["status"] for b in listed] == ["CANCELLED", "CANCELLED"]


def test_close_check_lists_blocking_items(client, db, seed):
    session = open_session(db, seed)
    order = seed_order(db, session)
    client.post(f"{API}/cx-sessions/{session.id}/float/start", json={"action": "START_CLOSE"})

    resp = client.get(f"{API}/cx-sessions/{session.id}/close-check")

    assert resp.status_code == 200
    body = resp.json()
    assert body["can_close"] is False
    assert {"type": "ORDER", "id": order.id, "status": "CONFIRMED"} in body["blocking_items"]

    closed = client.post(f"{API}/cx-sessions/{session.id}/close")
    assert closed.status_code == 409
    assert closed.json()["code"] == "SESSION_CLOSE_BLOCKED"


def test_request_logs_carry_request_and_session_ids(client, caplog):
    session_id = _create_session(client)
    caplog.set_level("INFO", logger="cxdesk")

    resp = client.get(f"{API}/cx-sessions/{session_id}/float", headers={"X-Request-ID": "req-42"})
    client.post(f"{API}/cx-sessions")

    assert resp.headers["X-Request-ID"] == "req-42"
    float_path = f"{API}/cx-sessions/{session_id}/float"
    served = [
        r for r in caplog.records if r.getMessage() == "http_request" and r.path == float_path
    ]
    assert len(served) == 1
    assert served[0].request_id == "req-42"
    assert served[0].session_id == session_id
    refused = [r for r in caplog.records if r.getMessage() == "domain_error"]
    assert refused[0].code == "SESSIONS_NOT_CLOSED"
    assert refused[0].status_code == 409
