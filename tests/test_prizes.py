from __future__ import annotations

from conftest import ADMIN, OWNER


def init_board(api, leaderboard_id: str, policy: str = "claim"):
    resp = api.post(
        f"/v1/leaderboards/{leaderboard_id}",
        json={
            "entry_fee": 100,
            "prize_ratio": 70,
            "prize_distribution": [50, 30, 20],
            "owner_account": OWNER,
            "payout_policy": policy,
        },
        headers={"X-Player-Id": ADMIN},
    )
    assert resp.status_code == 201


def play(api, harness, leaderboard_id: str, player_id: str, score: int):
    harness.ledger.mint(player_id, 100)
    headers = {"X-Player-Id": player_id}
    started = api.post(
        f"/v1/leaderboards/{leaderboard_id}/sessions",
        json={"name": player_id},
        headers=headers,
    )
    assert started.status_code == 201
    key = harness.session_key(player_id, started.json()["start_time"])
    resp = api.post(
        f"/v1/leaderboards/{leaderboard_id}/scores",
        json={"score": score, "session_key": key},
        headers=headers,
    )
    assert resp.status_code == 200
    return resp.json()


def claim(api, leaderboard_id: str, player_id: str):
    return api.post(f"/v1/leaderboards/{leaderboard_id}/claims", headers={"X-Player-Id": player_id})


def settle(api, leaderboard_id: str, caller: str = ADMIN):
    return api.post(f"/v1/leaderboards/{leaderboard_id}/settlements", headers={"X-Player-Id": caller})


def test_end_to_end_claim_scenario(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id)
    for player_id, score in [("p10", 10), ("p20", 20), ("p30", 30)]:
        play(api, harness, leaderboard_id, player_id, score)

    board = api.get(f"/v1/leaderboards/{leaderboard_id}").json()
    assert [row["score"] for row in board["results"]] == [30, 20, 10]
    assert board["prize_pool"] == 210

    resp = claim(api, leaderboard_id, "p30")
    assert resp.status_code == 200
    assert resp.json()["payout"] == {"destination": "p30", "amount": 105, "rank": 0}
    assert harness.ledger.balance("p30") == 105
    assert harness.ledger.transfers[-1] == (f"pool:{leaderboard_id}", "p30", 105, leaderboard_id)


def test_claim_is_idempotent(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id)
    play(api, harness, leaderboard_id, "alice", 50)

    assert claim(api, leaderboard_id, "alice").status_code == 200
    second = claim(api, leaderboard_id, "alice")
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "PRIZE_ALREADY_CLAIMED"
    assert harness.ledger.balance("alice") == 35

    row = api.get(f"/v1/leaderboards/{leaderboard_id}").json()["results"][0]
    assert row["claimed"] is True


def test_claim_uses_live_prize_pool(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id)
    play(api, harness, leaderboard_id, "alice", 50)

    harness.ledger.mint("sponsor", 1000)
    topped = api.post(
        f"/v1/leaderboards/{leaderboard_id}/prize-pool",
        json={"amount": 130},
        headers={"X-Player-Id": "sponsor"},
    )
    assert topped.status_code == 200
    assert topped.json()["prize_pool"] == 200

    resp = claim(api, leaderboard_id, "alice")
    assert resp.json()["payout"]["amount"] == 100
    assert api.get(f"/v1/leaderboards/{leaderboard_id}").json()["prize_pool"] == 200


def test_claim_outside_top_three_rejected(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id)
    for index, score in enumerate([40, 30, 20, 10]):
        play(api, harness, leaderboard_id, f"p{index}", score)

    resp = claim(api, leaderboard_id, "p3")
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "NOT_ELIGIBLE_FOR_PRIZE"


def test_claim_by_unranked_player_rejected(client):
    api, _, leaderboard_id = client
    init_board(api, leaderboard_id)

    resp = claim(api, leaderboard_id, "nobody")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "PLAYER_NOT_RANKED"


def test_failed_claim_transfer_leaves_flag_unset(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id)
    play(api, harness, leaderboard_id, "alice", 50)
    harness.ledger.failing_destinations.add("alice")

    resp = claim(api, leaderboard_id, "alice")
    assert resp.status_code == 402
    assert resp.json()["error"]["code"] == "TRANSFER_FAILED"
    assert api.get(f"/v1/leaderboards/{leaderboard_id}").json()["results"][0]["claimed"] is False


def test_settle_not_available_on_claim_board(client):
    api, _, leaderboard_id = client
    init_board(api, leaderboard_id, policy="claim")

    resp = settle(api, leaderboard_id)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "POLICY_MISMATCH"


def test_claim_not_available_on_settle_board(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    play(api, harness, leaderboard_id, "alice", 50)

    resp = claim(api, leaderboard_id, "alice")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "POLICY_MISMATCH"


def test_settle_pays_winners_and_resets_round(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    for index, score in enumerate([40, 30, 20, 10]):
        play(api, harness, leaderboard_id, f"p{index}", score)
    # 4 entry fees of 100 at 70% -> 280
    resp = settle(api, leaderboard_id)
    assert resp.status_code == 200
    body = resp.json()
    assert body["prize_pool_before"] == 280
    assert [(p["destination"], p["amount"]) for p in body["payouts"]] == [
        ("p0", 140),
        ("p1", 84),
        ("p2", 56),
    ]
    assert body["rollover"] is None
    assert body["total_paid"] == 280

    board = api.get(f"/v1/leaderboards/{leaderboard_id}").json()
    assert board["results"] == []
    assert board["prize_pool"] == 0
    assert board["commission_pool"] == 120


def test_settle_rolls_unassigned_shares_to_owner(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    play(api, harness, leaderboard_id, "solo", 10)

    body = settle(api, leaderboard_id).json()
    assert body["payouts"] == [{"destination": "solo", "amount": 35, "rank": 0}]
    assert body["rollover"] == {"destination": OWNER, "amount": 35, "rank": None}
    assert harness.ledger.balance(OWNER) == 35
    assert harness.ledger.balance("solo") == 35


def test_settle_requires_authority(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    play(api, harness, leaderboard_id, "solo", 10)

    resp = settle(api, leaderboard_id, caller="solo")
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_failed_settlement_is_reversed(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    play(api, harness, leaderboard_id, "p0", 30)
    play(api, harness, leaderboard_id, "p1", 20)
    harness.ledger.failing_destinations.add(OWNER)
    pool = f"pool:{leaderboard_id}"
    pool_before = harness.ledger.balance(pool)

    resp = settle(api, leaderboard_id)
    assert resp.status_code == 402
    assert resp.json()["error"]["code"] == "TRANSFER_FAILED"

    assert harness.ledger.balance(pool) == pool_before
    assert harness.ledger.balance("p0") == 0
    board = api.get(f"/v1/leaderboards/{leaderboard_id}").json()
    assert [row["player_id"] for row in board["results"]] == ["p0", "p1"]
    assert board["prize_pool"] == 140


def test_settlement_with_failed_reversal_closes_round(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    play(api, harness, leaderboard_id, "p0", 30)
    play(api, harness, leaderboard_id, "p1", 20)
    harness.ledger.failing_destinations.add(OWNER)
    harness.ledger.failing_sources.add("p0")

    resp = settle(api, leaderboard_id)
    assert resp.status_code == 502
    error = resp.json()["error"]
    assert error["code"] == "SETTLEMENT_INCOMPLETE"
    assert error["details"]["paid"] == [{"destination": "p0", "amount": 70, "rank": 0}]
    assert [p["destination"] for p in error["details"]["unpaid"]] == ["p1", OWNER]

    assert harness.ledger.balance("p0") == 70
    assert harness.ledger.balance("p1") == 0
    board = api.get(f"/v1/leaderboards/{leaderboard_id}").json()
    assert board["results"] == []
    assert board["prize_pool"] == 70

    harness.ledger.failing_destinations.clear()
    retry = settle(api, leaderboard_id)
    assert retry.status_code == 200
    assert retry.json()["payouts"] == []
    assert retry.json()["rollover"]["amount"] == 70
    assert harness.ledger.balance("p0") == 70


def test_settle_empty_board_rolls_everything_over(client):
    api, harness, leaderboard_id = client
    init_board(api, leaderboard_id, policy="settle")
    harness.ledger.mint("sponsor", 500)
    api.post(
        f"/v1/leaderboards/{leaderboard_id}/prize-pool",
        json={"amount": 500},
        headers={"X-Player-Id": "sponsor"},
    )

    body = settle(api, leaderboard_id).json()
    assert body["payouts"] == []
    assert body["rollover"]["amount"] == 500
