"""
Elimination & Completion Tests.

탈락 순서 → 최종 순위 → 상금 지급, 멱등성, 무결성 오류.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from seka.models.ledger import LedgerEntryType
from seka.models.tournament import Tournament, TournamentKind, TournamentPlayer, TournamentStatus
from seka.services.account import AccountService
from seka.utils.errors import IntegrityFaultError, InvalidStateError, NotFoundError


@pytest.fixture
def started_four(engine, make_config, make_user):
    """A,B,C,D 4명, 바이인 250 → 상금 풀 1000, 진행 중."""

    async def _build():
        tournament = await engine.create(
            make_config(
                kind=TournamentKind.SCHEDULED,
                max_players=4,
                buy_in=Decimal("250.00"),
                payout_percentages=(50, 30, 20),
            )
        )
        names = ["A", "B", "C", "D"]
        ids = {}
        for name in names:
            ids[name] = await make_user(nickname=name, balance="250.00")
            await engine.register(tournament.id, ids[name])
        await engine.start(tournament.id)
        return tournament, ids

    return _build


class TestFullTournament:
    @pytest.mark.asyncio
    async def test_ranks_and_prizes(self, engine, started_four, session_factory):
        """D → C → B 순 탈락: A=1, B=2, C=3, D=4 / 500, 300, 200, 0."""
        tournament, ids = await started_four()
        assert (await engine.get(tournament.id)).prize_pool == Decimal("1000.00")

        outcome_d = await engine.eliminate(tournament.id, ids["D"])
        outcome_c = await engine.eliminate(tournament.id, ids["C"])
        assert not outcome_d.tournament_completed
        assert not outcome_c.tournament_completed

        final = await engine.eliminate(tournament.id, ids["B"])

        assert final.tournament_completed
        assert final.champion_id == ids["A"]
        assert final.settlement.total_paid == Decimal("1000.00")

        tournament = await engine.get(tournament.id)
        assert tournament.status == TournamentStatus.COMPLETED
        assert tournament.completed_at is not None
        assert tournament.settled_at is not None
        assert tournament.eliminated_user_ids == [ids["D"], ids["C"], ids["B"]]

        ranks = {p.user_id: p.final_rank for p in await engine.get_players(tournament.id)}
        assert ranks == {ids["A"]: 1, ids["B"]: 2, ids["C"]: 3, ids["D"]: 4}

        expected = {"A": "500.00", "B": "300.00", "C": "200.00", "D": "0"}
        for name, amount in expected.items():
            assert await engine.get_balance(ids[name]) == Decimal(amount)
            assert (await engine.verify_history(ids[name])).is_consistent

        async with session_factory() as session:
            accounts = AccountService(session)
            for name, amount in expected.items():
                entries, _ = await accounts.get_history(
                    ids[name], entry_type=LedgerEntryType.EARNED
                )
                if amount == "0":
                    assert entries == []
                    continue
                assert len(entries) == 1
                prize = entries[0]
                assert prize.amount == Decimal(amount)
                assert prize.balance_after - prize.balance_before == Decimal(amount)
                assert prize.reference_id == tournament.id

    @pytest.mark.asyncio
    async def test_leaderboard(self, engine, started_four):
        tournament, ids = await started_four()
        await engine.report_chip_counts(
            tournament.id, {ids["A"]: 500, ids["B"]: 2000, ids["C"]: 1500}
        )
        await engine.eliminate(tournament.id, ids["D"])

        board = await engine.get_leaderboard(tournament.id)

        assert [e.user_id for e in board] == [ids["B"], ids["C"], ids["A"], ids["D"]]
        assert board[-1].eliminated
        assert board[-1].chips == 0
        assert all(e.rank is None for e in board)

        await engine.eliminate(tournament.id, ids["A"])
        await engine.eliminate(tournament.id, ids["C"])

        board = await engine.get_leaderboard(tournament.id)
        assert [(e.user_id, e.rank) for e in board] == [
            (ids["B"], 1),
            (ids["C"], 2),
            (ids["A"], 3),
            (ids["D"], 4),
        ]
        assert board[0].winnings == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_leaderboard_unknown_tournament(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get_leaderboard("missing")


class TestEliminate:
    @pytest.mark.asyncio
    async def test_eliminate_twice_is_noop(self, engine, started_four):
        tournament, ids = await started_four()
        await engine.eliminate(tournament.id, ids["D"])
        before = await engine.get(tournament.id)

        outcome = await engine.eliminate(tournament.id, ids["D"])

        after = await engine.get(tournament.id)
        assert outcome.already_eliminated
        assert after.eliminated_user_ids == [ids["D"]]
        assert after.version == before.version
        assert after.status == TournamentStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_eliminate_sets_fields(self, engine, started_four):
        tournament, ids = await started_four()

        outcome = await engine.eliminate(tournament.id, ids["C"])

        assert outcome.player.is_eliminated
        assert outcome.player.eliminated_at is not None
        assert outcome.player.chips == 0

    @pytest.mark.asyncio
    async def test_repeat_after_completion_is_noop(self, engine, started_four):
        tournament, ids = await started_four()
        for name in ("D", "C", "B"):
            await engine.eliminate(tournament.id, ids[name])

        outcome = await engine.eliminate(tournament.id, ids["C"])

        assert outcome.already_eliminated
        assert await engine.get_balance(ids["C"]) == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_champion_cannot_be_eliminated_after_completion(
        self, engine, started_four
    ):
        tournament, ids = await started_four()
        for name in ("D", "C", "B"):
            await engine.eliminate(tournament.id, ids[name])

        with pytest.raises(InvalidStateError):
            await engine.eliminate(tournament.id, ids["A"])

    @pytest.mark.asyncio
    async def test_eliminate_during_registration(self, engine, make_config, make_user):
        tournament = await engine.create(make_config(kind=TournamentKind.SCHEDULED))
        user_id = await make_user()
        await engine.register(tournament.id, user_id)

        with pytest.raises(InvalidStateError):
            await engine.eliminate(tournament.id, user_id)

    @pytest.mark.asyncio
    async def test_eliminate_non_participant(self, engine, started_four, make_user):
        tournament, _ = await started_four()

        with pytest.raises(NotFoundError):
            await engine.eliminate(tournament.id, await make_user())


class TestIntegrityFaults:
    @pytest.mark.asyncio
    async def test_no_survivor(self, engine, started_four, session_factory):
        """탈락 목록 밖에서 is_eliminated가 바뀐 경우 → 생존자 0명."""
        tournament, ids = await started_four()
        async with session_factory() as session:
            await session.execute(
                update(TournamentPlayer)
                .where(
                    TournamentPlayer.tournament_id == tournament.id,
                    TournamentPlayer.user_id.in_([ids["B"], ids["C"], ids["D"]]),
                )
                .values(is_eliminated=True)
            )
            await session.commit()

        with pytest.raises(IntegrityFaultError):
            await engine.eliminate(tournament.id, ids["A"])

        after = await engine.get(tournament.id)
        assert after.status == TournamentStatus.IN_PROGRESS
        assert after.eliminated_user_ids == []

    @pytest.mark.asyncio
    async def test_corrupt_elimination_list(self, engine, started_four, session_factory):
        tournament, ids = await started_four()
        await engine.eliminate(tournament.id, ids["D"])
        await engine.eliminate(tournament.id, ids["C"])
        async with session_factory() as session:
            await session.execute(
                update(Tournament)
                .where(Tournament.id == tournament.id)
                .values(eliminated_user_ids=[ids["D"]])
            )
            await session.commit()

        with pytest.raises(IntegrityFaultError):
            await engine.eliminate(tournament.id, ids["B"])

        # 롤백: 완료/지급 없음
        after = await engine.get(tournament.id)
        assert after.status == TournamentStatus.IN_PROGRESS
        assert await engine.get_balance(ids["A"]) == Decimal("0")
