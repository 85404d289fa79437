from unittest import mock

from django.db import OperationalError
from django.test import TestCase

from prize import services
from prize.counters import GiftCounter
from prize.exceptions import (
    AlreadySpun,
    GlobalLimitReached,
    NoLongerAvailable,
    NotFound,
    StoreUnavailable,
    VenueStockExhausted,
    VenueStockNotConfigured,
)
from prize.models import Gift, Participant
from prize.availability import ScopePolicy, available_gift_ids
from prize.services import (
    Reservation,
    ReservationState,
    finalize_spin,
    reset_all,
    reset_campaign,
    reset_gift,
)
from prize.tests.fixtures import (
    limit_city,
    limit_venue,
    make_campaign,
    make_city,
    make_gift,
    make_participant,
    make_venue,
)


class FinalizeSpinTests(TestCase):
    def setUp(self):
        self.campaign = make_campaign()
        self.city = make_city()
        self.venue = make_venue(self.city, self.campaign)

    def winners(self, gift: Gift) -> int:
        gift.refresh_from_db()
        return gift.current_winners

    def test_finalize_awards_gift_and_increments_counter(self):
        gift = make_gift(self.campaign, max_winners=3)
        participant = make_participant(self.campaign, code="AAA", city=self.city)

        result = finalize_spin(participant.id, gift.id)

        self.assertEqual(result.gift.id, gift.id)
        self.assertEqual(result.gift.current_winners, 1)
        self.assertTrue(result.participant.won)
        self.assertEqual(result.participant.prize_id, gift.id)
        self.assertIsNotNone(result.participant.won_at)
        self.assertEqual(self.winners(gift), 1)

    def test_second_finalize_for_same_ticket_is_rejected(self):
        gift = make_gift(self.campaign, max_winners=3)
        participant = make_participant(self.campaign)

        finalize_spin(participant.id, gift.id)
        with self.assertRaises(AlreadySpun):
            finalize_spin(participant.id, gift.id)

        self.assertEqual(self.winners(gift), 1)

    def test_already_won_ticket_touches_nothing(self):
        gift = make_gift(self.campaign, max_winners=3)
        other = make_gift(self.campaign, max_winners=3, name="Cap")
        participant = make_participant(self.campaign, won=True, prize=gift)

        with self.assertRaises(AlreadySpun):
            finalize_spin(participant.id, other.id)

        self.assertEqual(self.winners(gift), 0)
        self.assertEqual(self.winners(other), 0)

    def test_unknown_participant_and_gift(self):
        gift = make_gift(self.campaign, max_winners=3)
        participant = make_participant(self.campaign)

        with self.assertRaises(NotFound):
            finalize_spin("00000000-0000-0000-0000-000000000000", gift.id)
        with self.assertRaises(NotFound):
            finalize_spin("not-a-uuid", gift.id)
        with self.assertRaises(NotFound):
            finalize_spin(participant.id, gift.id + 1000)

    def test_gift_from_another_campaign_is_not_available(self):
        other_campaign = make_campaign("winter")
        gift = make_gift(other_campaign, max_winners=3)
        participant = make_participant(self.campaign)

        with self.assertRaises(NoLongerAvailable):
            finalize_spin(participant.id, gift.id)

    def test_city_limit_rejects_with_no_longer_available(self):
        gift = make_gift(self.campaign, max_winners=10)
        limit_city(gift, self.city, 1)
        make_participant(self.campaign, code="W", city=self.city, won=True, prize=gift)
        participant = make_participant(self.campaign, code="X", city=self.city)

        with self.assertRaises(NoLongerAvailable):
            finalize_spin(participant.id, gift.id)
        self.assertEqual(self.winners(gift), 0)

    def test_concurrent_spins_on_last_unit(self):
        """Two pending tickets race for a gift with a single unit."""

        gift = make_gift(self.campaign, max_winners=1)
        first = make_participant(self.campaign, code="ONE")
        second = make_participant(self.campaign, code="TWO")
        real_read = GiftCounter.read
        started = []
        interleaved = []

        def racing_read(counter):
            value = real_read(counter)
            if not started:
                started.append(counter.gift_id)
                interleaved.append(finalize_spin(second.id, gift.id))
            return value

        with mock.patch.object(GiftCounter, "read", autospec=True, side_effect=racing_read):
            with self.assertRaises(GlobalLimitReached):
                finalize_spin(first.id, gift.id)

        self.assertEqual(interleaved[0].participant.id, second.id)
        self.assertEqual(self.winners(gift), 1)
        first.refresh_from_db()
        self.assertFalse(first.won)

    def test_sequential_spins_never_exceed_ceiling(self):
        gift = make_gift(self.campaign, max_winners=2)
        outcomes = []
        for idx in range(4):
            participant = make_participant(self.campaign, code=f"P{idx}")
            try:
                finalize_spin(participant.id, gift.id)
                outcomes.append("won")
            except GlobalLimitReached:
                outcomes.append("limit")

        self.assertEqual(outcomes, ["won", "won", "limit", "limit"])
        self.assertEqual(self.winners(gift), 2)

    def test_venue_stock_exhausted_after_two_wins(self):
        gift = make_gift(self.campaign)
        limit_venue(gift, self.venue, 2)
        participants = [
            make_participant(self.campaign, code=f"V{idx}", venue=self.venue) for idx in range(3)
        ]

        finalize_spin(participants[0].id, gift.id)
        finalize_spin(participants[1].id, gift.id)
        with self.assertRaises(VenueStockExhausted):
            finalize_spin(participants[2].id, gift.id)

        self.assertEqual(self.winners(gift), 2)

    def test_venue_without_stock_row_is_rejected(self):
        gift = make_gift(self.campaign, max_winners=50)
        other_venue = make_venue(self.city, self.campaign, "Chez Paul")
        limit_venue(gift, other_venue, 5)
        participant = make_participant(self.campaign, venue=self.venue)

        with self.assertRaises(VenueStockNotConfigured):
            finalize_spin(participant.id, gift.id)
        self.assertEqual(self.winners(gift), 0)

    def test_venue_race_rolls_back_reservation(self):
        gift = make_gift(self.campaign)
        limit_venue(gift, self.venue, 1)
        limit_venue(gift, make_venue(self.city, self.campaign, "Other"), 5)
        participant = make_participant(self.campaign, code="LATE", venue=self.venue)
        real_resolve = services.availability.resolve_availability

        def stale_resolve(*args, **kwargs):
            entries = real_resolve(*args, **kwargs)
            # A rival win lands at the venue right after the availability check.
            make_participant(self.campaign, code="RIVAL", venue=self.venue, won=True, prize=gift)
            return entries

        with mock.patch.object(services.availability, "resolve_availability", stale_resolve):
            with self.assertRaises(VenueStockExhausted):
                finalize_spin(participant.id, gift.id)

        self.assertEqual(self.winners(gift), 0)
        participant.refresh_from_db()
        self.assertFalse(participant.won)

    def test_ticket_claimed_concurrently_rolls_back(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign)
        real_read = GiftCounter.read

        def racing_read(counter):
            Participant.objects.filter(pk=participant.pk).update(won=True)
            return real_read(counter)

        with mock.patch.object(GiftCounter, "read", autospec=True, side_effect=racing_read):
            with self.assertRaises(AlreadySpun):
                finalize_spin(participant.id, gift.id)

        self.assertEqual(self.winners(gift), 0)

    def test_store_failure_is_translated(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign)

        with mock.patch.object(
            GiftCounter, "try_reserve", side_effect=OperationalError("connection lost")
        ):
            with self.assertRaises(StoreUnavailable) as ctx:
                finalize_spin(participant.id, gift.id)

        self.assertTrue(ctx.exception.retryable)

    def test_store_failure_after_reservation_is_compensated(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign)

        with mock.patch.object(
            services, "_claim_ticket", side_effect=OperationalError("connection lost")
        ):
            with self.assertRaises(StoreUnavailable):
                finalize_spin(participant.id, gift.id)

        self.assertEqual(self.winners(gift), 0)

    def test_available_gift_can_be_won(self):
        gifts = [make_gift(self.campaign, name=f"G{idx}") for idx in range(3)]
        for gift in gifts:
            limit_venue(gift, self.venue, 1)

        for idx, gift_id in enumerate(available_gift_ids(self.campaign.id, self.city.id, self.venue.id)):
            participant = make_participant(self.campaign, code=f"A{idx}", venue=self.venue)
            self.assertEqual(finalize_spin(participant.id, gift_id).gift.id, gift_id)

        self.assertEqual(available_gift_ids(self.campaign.id, self.city.id, self.venue.id), [])

    def test_gift_deleted_mid_spin_is_not_found(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign)
        real_resolve = services.availability.resolve_availability

        def vanishing_resolve(*args, **kwargs):
            entries = real_resolve(*args, **kwargs)
            Gift.objects.filter(pk=gift.pk).delete()
            return entries

        with mock.patch.object(services.availability, "resolve_availability", vanishing_resolve):
            with self.assertRaises(NotFound):
                finalize_spin(participant.id, gift.id)

        participant.refresh_from_db()
        self.assertFalse(participant.won)

    def test_open_venue_policy_accepts_missing_stock_row(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign, venue=self.venue)

        with mock.patch("prize.availability.VENUE_SCOPE_POLICY", ScopePolicy.OPEN_BY_DEFAULT):
            result = finalize_spin(participant.id, gift.id)

        self.assertTrue(result.participant.won)
        self.assertEqual(self.winners(gift), 1)

    def test_closed_city_policy_rejects_missing_city_row(self):
        gift = make_gift(self.campaign, max_winners=5)
        participant = make_participant(self.campaign, city=self.city)

        with mock.patch("prize.availability.CITY_SCOPE_POLICY", ScopePolicy.CLOSED_BY_DEFAULT):
            with self.assertRaises(NoLongerAvailable):
                finalize_spin(participant.id, gift.id)

        self.assertEqual(self.winners(gift), 0)


class ReservationTests(TestCase):
    def test_state_transitions(self):
        gift = make_gift(max_winners=1)
        counter = GiftCounter(gift.id)

        reservation = Reservation.acquire(counter, 1)
        self.assertEqual(reservation.state, ReservationState.RESERVED)
        self.assertIsNone(Reservation.acquire(counter, 1))

        reservation.roll_back(reason="test")
        self.assertEqual(reservation.state, ReservationState.ROLLED_BACK)
        self.assertEqual(counter.read(), 0)
        with self.assertRaises(RuntimeError):
            reservation.confirm()

        confirmed = Reservation.acquire(counter, 1)
        confirmed.confirm()
        with self.assertRaises(RuntimeError):
            confirmed.roll_back(reason="too late")
        self.assertEqual(counter.read(), 1)


class ResetTests(TestCase):
    def setUp(self):
        self.campaign = make_campaign()

    def test_reset_gift_reopens_tickets_and_allows_new_spins(self):
        gift = make_gift(self.campaign, max_winners=1)
        winner = make_participant(self.campaign, code="WIN")
        finalize_spin(winner.id, gift.id)

        late = make_participant(self.campaign, code="LATE")
        with self.assertRaises(GlobalLimitReached):
            finalize_spin(late.id, gift.id)

        result = reset_gift(gift.id)

        self.assertEqual(result.cleared, 1)
        self.assertEqual(result.reopened, 1)
        self.assertEqual(result.gift.current_winners, 0)
        winner.refresh_from_db()
        self.assertFalse(winner.won)
        self.assertIsNone(winner.prize_id)

        finalize_spin(late.id, gift.id)
        with self.assertRaises(GlobalLimitReached):
            finalize_spin(winner.id, gift.id)

    def test_reopened_ticket_with_pending_sibling_gets_suffix(self):
        gift = make_gift(self.campaign, max_winners=5)
        winner = make_participant(self.campaign, code="DUP")
        finalize_spin(winner.id, gift.id)
        make_participant(self.campaign, code="DUP")

        reset_gift(gift.id)

        winner.refresh_from_db()
        self.assertFalse(winner.won)
        self.assertTrue(winner.code.startswith("DUP-"))

    def test_reset_campaign_resets_every_gift(self):
        first = make_gift(self.campaign, max_winners=2, name="A")
        second = make_gift(self.campaign, max_winners=2, name="B")
        Gift.objects.filter(pk__in=[first.pk, second.pk]).update(current_winners=2)

        results = reset_campaign(self.campaign.id)

        self.assertEqual([result.cleared for result in results], [2, 2])
        self.assertEqual(
            list(Gift.objects.filter(campaign=self.campaign).values_list("current_winners", flat=True)),
            [0, 0],
        )

    def test_spin_landing_during_reset_keeps_its_win(self):
        gift = make_gift(self.campaign, max_winners=1)
        winner = make_participant(self.campaign, code="OLD")
        finalize_spin(winner.id, gift.id)
        newcomer = make_participant(self.campaign, code="NEW")
        real_reset = GiftCounter.reset

        def reset_then_spin(counter):
            cleared = real_reset(counter)
            finalize_spin(newcomer.id, gift.id)
            return cleared

        with mock.patch.object(GiftCounter, "reset", autospec=True, side_effect=reset_then_spin):
            result = reset_gift(gift.id)

        self.assertEqual(result.reopened, 1)
        self.assertEqual(result.gift.current_winners, 1)
        winner.refresh_from_db()
        newcomer.refresh_from_db()
        self.assertFalse(winner.won)
        self.assertTrue(newcomer.won)
        self.assertEqual(newcomer.prize_id, gift.id)

    def test_reset_all_covers_every_campaign_and_legacy_gifts(self):
        grouped = make_gift(self.campaign, max_winners=5, name="A")
        other = make_gift(make_campaign("winter"), max_winners=5, name="B")
        legacy = make_gift(None, max_winners=5, name="C")
        Gift.objects.update(current_winners=2)

        results = reset_all()

        self.assertEqual([result.gift.id for result in results], [grouped.id, other.id, legacy.id])
        self.assertEqual(set(Gift.objects.values_list("current_winners", flat=True)), {0})

    def test_reset_unknown_gift(self):
        with self.assertRaises(NotFound):
            reset_gift(12345)
