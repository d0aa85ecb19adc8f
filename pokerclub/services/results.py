"""Payout templates, payout snapshots and results entry."""

from typing import Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.logging_config import get_logger
from pokerclub.models.base import utcnow
from pokerclub.models.payout import (
    DealType,
    PayoutTemplate,
    PlayerDeal,
    TournamentPayout,
    TournamentResult,
)
from pokerclub.models.registration import Registration, RegistrationStatus
from pokerclub.models.tournament import LiveStatus, Tournament, TournamentEntry
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.tournament.payouts import (
    Deal,
    PayoutLevel,
    compute_payouts,
    deal_total,
    parse_payout_structure,
    template_amounts,
    validate_payout_structure,
)
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import (
    ResultsAlreadyEntered,
    TemplateNotFound,
    TournamentNotFound,
    ValidationError,
)

logger = get_logger(__name__)

# Registrations that count towards the buy-in fallback for the prize pool
PAID_REGISTRATION_STATUSES = (
    RegistrationStatus.REGISTERED.value,
    RegistrationStatus.CHECKED_IN.value,
    RegistrationStatus.SEATED.value,
    RegistrationStatus.BUSTED.value,
)


class ResultsService:
    def __init__(self, db: AsyncSession, event_bus: TournamentEventBus | None = None):
        self.db = db
        self.event_bus = event_bus

    # =========================================================================
    # Templates
    # =========================================================================

    async def create_template(
        self,
        name: str,
        payout_structure: Sequence[PayoutLevel],
        min_players: int = 2,
        max_players: int | None = None,
        description: str | None = None,
    ) -> PayoutTemplate:
        if min_players < 1:
            raise ValidationError("Minimum players must be at least 1", {"min_players": min_players})
        if max_players is not None and max_players < min_players:
            raise ValidationError(
                "Maximum players cannot be below minimum players",
                {"min_players": min_players, "max_players": max_players},
            )
        positions = [level.position for level in payout_structure]
        if len(set(positions)) != len(positions) or any(p < 1 for p in positions):
            raise ValidationError("Payout positions must be unique and start at 1", {"positions": positions})
        validate_payout_structure(payout_structure)

        async with transaction(self.db):
            template = PayoutTemplate(
                name=name,
                description=description,
                min_players=min_players,
                max_players=max_players,
                payout_structure=[level.to_dict() for level in payout_structure],
            )
            self.db.add(template)
            await self.db.flush()

        logger.info("payout_template_created", template_id=template.id, name=name)
        return template

    async def get_template(self, template_id: str) -> PayoutTemplate:
        template = await self.db.get(PayoutTemplate, template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    async def find_suitable_templates(self, player_count: int) -> list[PayoutTemplate]:
        """Templates whose player range contains `player_count`."""
        result = await self.db.execute(
            select(PayoutTemplate)
            .where(PayoutTemplate.min_players <= player_count)
            .where(
                or_(
                    PayoutTemplate.max_players.is_(None),
                    PayoutTemplate.max_players >= player_count,
                )
            )
            .order_by(PayoutTemplate.min_players.desc(), PayoutTemplate.name)
        )
        return list(result.scalars().all())

    async def load_structure(self, template_id: str) -> list[PayoutLevel]:
        """Template levels, validated at use time."""
        template = await self.get_template(template_id)
        structure = parse_payout_structure(template.payout_structure)
        validate_payout_structure(structure)
        return structure

    # =========================================================================
    # Prize pool and payouts
    # =========================================================================

    async def _get_tournament(self, tournament_id: str) -> Tournament:
        tournament = await self.db.get(Tournament, tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    async def calculate_prize_pool(
        self,
        tournament: Tournament,
        fallback_player_count: int | None = None,
    ) -> int:
        """Sum of the entry ledger, or buy-in times players when it is empty."""
        entries_total, entries_count = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(TournamentEntry.amount_cents), 0),
                    func.count(TournamentEntry.id),
                ).where(TournamentEntry.tournament_id == tournament.id)
            )
        ).one()
        if entries_count:
            return int(entries_total)

        if fallback_player_count is None:
            fallback_player_count = await self.count_paid_players(tournament.id)
        return tournament.buy_in_cents * fallback_player_count

    async def count_paid_players(self, tournament_id: str) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(Registration)
            .where(Registration.tournament_id == tournament_id)
            .where(Registration.status.in_(PAID_REGISTRATION_STATUSES))
        ) or 0

    async def get_payouts(self, tournament_id: str) -> TournamentPayout | None:
        result = await self.db.execute(
            select(TournamentPayout).where(TournamentPayout.tournament_id == tournament_id)
        )
        return result.scalar_one_or_none()

    async def calculate_tournament_payouts(
        self,
        tournament_id: str,
        template_id: str | None = None,
    ) -> TournamentPayout:
        """
        Recompute the cached payout snapshot.

        Without an explicit template the most specific suitable template for
        the current player count is used.
        """
        async with transaction(self.db):
            tournament = await self._get_tournament(tournament_id)
            player_count = await self.count_paid_players(tournament_id)
            pool = await self.calculate_prize_pool(tournament, player_count)

            if template_id is None:
                suitable = await self.find_suitable_templates(player_count)
                if not suitable:
                    raise ValidationError(
                        "No payout template fits this number of players",
                        {"player_count": player_count},
                    )
                template_id = suitable[0].id
            structure = await self.load_structure(template_id)

            positions = template_amounts(structure, pool)
            payout = await self.get_payouts(tournament_id)
            if payout is None:
                payout = TournamentPayout(tournament_id=tournament_id)
                self.db.add(payout)
            payout.template_id = template_id
            payout.player_count = player_count
            payout.total_prize_pool = pool
            payout.payout_positions = positions
            await self.db.flush()

        logger.info(
            "payouts_calculated",
            tournament_id=tournament_id,
            template_id=template_id,
            player_count=player_count,
            total_prize_pool=pool,
        )
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.PAYOUTS_CALCULATED,
                tournament_id=tournament_id,
                data={"total_prize_pool": pool, "positions": positions},
            ),
        )
        return payout

    # =========================================================================
    # Results
    # =========================================================================

    async def list_results(self, tournament_id: str) -> list[TournamentResult]:
        result = await self.db.execute(
            select(TournamentResult)
            .where(TournamentResult.tournament_id == tournament_id)
            .order_by(TournamentResult.final_position)
        )
        return list(result.scalars().all())

    async def enter_results(
        self,
        tournament_id: str,
        positions: Sequence[Tuple[str, int]],
        template_id: str | None = None,
        deal: Optional[Deal] = None,
        points: dict[str, int] | None = None,
        actor_id: str | None = None,
        deal_notes: str | None = None,
    ) -> tuple[list[TournamentResult], PlayerDeal | None]:
        """
        Record final standings and prizes, then finish the tournament.

        Raises:
            ValidationError: Duplicate users or positions, or a bad template/deal
            ResultsAlreadyEntered: Results exist for this tournament
        """
        self._validate_positions(positions, deal)

        async with transaction(self.db):
            tournament = await self._get_tournament(tournament_id)
            existing = await self.db.scalar(
                select(func.count())
                .select_from(TournamentResult)
                .where(TournamentResult.tournament_id == tournament_id)
            )
            if existing:
                raise ResultsAlreadyEntered(tournament_id)

            pool = await self.calculate_prize_pool(tournament, len(positions))
            structure = await self.load_structure(template_id) if template_id else None
            payouts = compute_payouts(positions, pool, template=structure, deal=deal)

            deal_row = None
            if deal is not None:
                deal_row = PlayerDeal(
                    tournament_id=tournament_id,
                    deal_type=deal.deal_type.value,
                    affected_positions=list(deal.affected_positions),
                    custom_payouts=(
                        dict(deal.custom_payouts)
                        if deal.deal_type == DealType.CUSTOM
                        else None
                    ),
                    total_amount_cents=deal_total(deal, positions, payouts),
                    notes=deal_notes,
                    created_by=actor_id,
                )
                self.db.add(deal_row)

            points = points or {}
            results = [
                TournamentResult(
                    tournament_id=tournament_id,
                    user_id=user_id,
                    final_position=final_position,
                    prize_cents=prize,
                    points=points.get(user_id, 0),
                )
                for (user_id, final_position), prize in zip(positions, payouts)
            ]
            self.db.add_all(results)

            if tournament.live_status != LiveStatus.FINISHED.value:
                tournament.live_status = LiveStatus.FINISHED.value
                tournament.end_time = utcnow()
            await self.db.flush()

        logger.info(
            "results_entered",
            tournament_id=tournament_id,
            players=len(results),
            total_prize_pool=pool,
            deal_type=deal.deal_type.value if deal else None,
        )
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.RESULTS_ENTERED,
                tournament_id=tournament_id,
                data={
                    "results": [r.to_dict() for r in results],
                    "total_prize_pool": pool,
                },
            ),
        )
        return results, deal_row

    @staticmethod
    def _validate_positions(
        positions: Sequence[Tuple[str, int]],
        deal: Optional[Deal],
    ) -> None:
        if not positions:
            raise ValidationError("At least one player position is required")
        users = [user_id for user_id, _ in positions]
        places = [final_position for _, final_position in positions]
        if len(set(users)) != len(users):
            raise ValidationError("Each player may appear only once in the results")
        if len(set(places)) != len(places):
            raise ValidationError("Each final position may be used only once")
        if any(place < 1 for place in places):
            raise ValidationError("Final positions start at 1", {"positions": places})

        if deal is None:
            return
        if not deal.affected_positions:
            raise ValidationError("A deal must cover at least one position")
        missing = set(deal.affected_positions) - set(places)
        if missing:
            raise ValidationError(
                "Deal covers positions that are not in the results",
                {"positions": sorted(missing)},
            )
        if deal.deal_type == DealType.CUSTOM:
            if any(amount < 0 for amount in deal.custom_payouts.values()):
                raise ValidationError("Custom payouts cannot be negative")
