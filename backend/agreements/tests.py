from datetime import timedelta
from functools import partial
from unittest.mock import patch

from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import (
	FixedClock,
	RecordingNotifier,
	make_owner,
	make_driver,
	make_load,
	run_concurrently,
)
from common.utils import format_trip_duration, trip_duration_minutes
from drivers.models import Driver
from matches.models import MatchStatus
from services.agreements import AgreementStore, TLASigningEngine, TripTracker, render_tla_text
from services.core import (
	AlreadyRatedError,
	AlreadySignedError,
	ConflictError,
	ForbiddenError,
	InvalidTransitionError,
	PreconditionError,
)
from services.negotiation import MatchNegotiationEngine
from services.ratings import RatingAggregator, compute_running_average
from services.ratings.aggregation import _LostRace
from .models import DriverRating, TLAStatus, TripLeaseAgreement, can_transition
from . import views


class LeaseFlowMixin:
	"""Two fleets, one driver, one load, engines sharing a fixed clock."""

	def setUp(self):
		self.lessor = make_owner('lessor', legal_name='Lone Star Haulers LLC', dot_number='1234567')
		self.lessee = make_owner('lessee', company_name='Peach State Freight')
		self.outsider = make_owner('outsider')
		self.staff = make_owner('ops', role='admin', is_staff=True)
		self.driver = make_driver(self.lessor)
		self.load = make_load(self.lessee)

		self.clock = FixedClock()
		self.notifier = RecordingNotifier()
		self.negotiation = MatchNegotiationEngine(clock=self.clock, notifier=self.notifier)
		self.signing = TLASigningEngine(clock=self.clock, notifier=self.notifier)
		self.tracker = TripTracker(clock=self.clock, notifier=self.notifier)
		self.ratings = RatingAggregator(clock=self.clock)

	def _accepted_match(self, terms=None, counter=None):
		match = self.negotiation.create(
			'load_owner', self.lessee.id, self.load.id, self.driver.id, terms or {'rate': 2500},
		).record
		if counter:
			self.negotiation.respond(match.id, self.lessor.id, 'counter', terms=counter)
			return self.negotiation.respond(match.id, self.lessee.id, 'accept').record
		return self.negotiation.respond(match.id, self.lessor.id, 'accept').record

	def _agreement(self, **kwargs):
		match = self._accepted_match(**kwargs)
		return self.signing.create_for_match(match.id, self.lessee.id).record

	def _signed_agreement(self):
		tla = self._agreement()
		self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor')
		return self.signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee', insurance_option='existing_policy').record

	def _completed_agreement(self, minutes=90):
		tla = self._signed_agreement()
		self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee')
		self.clock.advance(minutes=minutes)
		return self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee').record


class LeaseFlowTestCase(LeaseFlowMixin, TestCase):
	pass


class AgreementCreationTests(LeaseFlowTestCase):

	def test_create_for_accepted_match(self):
		match = self._accepted_match()
		self.notifier.events.clear()
		tla = self.signing.create_for_match(match.id, self.lessee.id).record

		self.assertEqual(tla.status, TLAStatus.PENDING_LESSOR)
		self.assertEqual(tla.lessor_owner_id, self.lessor.id)
		self.assertEqual(tla.lessee_owner_id, self.lessee.id)
		self.assertEqual(tla.version, 1)
		self.assertEqual(tla.payment, {'amount': 2500.0})
		self.assertEqual(tla.insurance, {})

		match.refresh_from_db()
		self.load.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.TLA_PENDING)
		self.assertEqual(match.tla_id, tla.id)
		self.assertEqual(self.load.status, 'matched')
		self.assertEqual(self.notifier.sent_to('tla_ready'), [self.lessor.id])
		self.assertEqual(self.notifier.sent_to('match_accepted'), [self.lessee.id])

	def test_party_snapshots_fall_back_to_company_name(self):
		tla = self._agreement()

		self.assertEqual(tla.lessor['legalName'], 'Lone Star Haulers LLC')
		self.assertEqual(tla.lessor['dotNumber'], '1234567')
		self.assertEqual(tla.lessee['legalName'], 'Peach State Freight')
		self.assertNotIn('dotNumber', tla.lessee)
		self.assertEqual(tla.lessee['contactEmail'], 'lessee@example.com')
		self.assertEqual(tla.driver_snapshot['cdlNumber'], 'TX-1234567')

	def test_generate_uses_counter_terms_and_omits_absent_values(self):
		match = self._accepted_match(counter={'rate': 3000, 'deliveryDate': '2025-03-04'})
		nameless = make_owner('nameless', company_name='', email='')

		fields = self.signing.generate(match, nameless, self.lessee, self.driver, self.clock.now())

		self.assertEqual(fields['payment'], {'amount': 3000.0, 'dueDate': '2025-03-04'})
		self.assertEqual(fields['trip']['startDate'], self.clock.now().isoformat())
		self.assertEqual(fields['trip']['endDate'], '2025-03-04')
		self.assertEqual(fields['lessor']['legalName'], 'Unknown')
		self.assertEqual(fields['lessor']['contactEmail'], '')
		self.assertNotIn('phone', fields['lessor'])
		self.assertEqual(fields['status'], TLAStatus.PENDING_LESSOR)
		# Pure: nothing written
		self.assertFalse(TripLeaseAgreement.objects.exists())

	def test_pickup_date_becomes_start_date(self):
		match = self._accepted_match(terms={'rate': 2500, 'pickupDate': '2025-03-01'})
		fields = self.signing.generate(match, self.lessor, self.lessee, self.driver, self.clock.now())
		self.assertEqual(fields['trip']['startDate'], '2025-03-01')
		self.assertNotIn('endDate', fields['trip'])

	def test_create_requires_accepted_match(self):
		match = self.negotiation.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 2500}).record
		with self.assertRaises(InvalidTransitionError):
			self.signing.create_for_match(match.id, self.lessee.id)

	def test_create_requires_party_actor(self):
		match = self._accepted_match()
		with self.assertRaises(ForbiddenError):
			self.signing.create_for_match(match.id, self.outsider.id)

	def test_create_conflicts_when_load_was_matched_elsewhere(self):
		match = self._accepted_match()
		self.load.status = 'matched'
		self.load.save(update_fields=['status'])

		with self.assertRaises(ConflictError):
			self.signing.create_for_match(match.id, self.lessee.id)

		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.ACCEPTED)
		self.assertFalse(TripLeaseAgreement.objects.exists())

	def test_second_create_is_rejected(self):
		match = self._accepted_match()
		self.signing.create_for_match(match.id, self.lessee.id)
		with self.assertRaises(InvalidTransitionError):
			self.signing.create_for_match(match.id, self.lessor.id)
		self.assertEqual(TripLeaseAgreement.objects.count(), 1)


class AgreementSigningTests(LeaseFlowTestCase):

	def test_lessor_then_lessee(self):
		tla = self._agreement()
		self.notifier.events.clear()

		tla = self.signing.sign(
			tla.id, self.lessor.id, 'lessor', 'Dana Lessor',
			audit_context={'ip_address': '10.0.0.5', 'user_agent': 'Mozilla/5.0'},
		).record
		self.assertEqual(tla.status, TLAStatus.PENDING_LESSEE)
		self.assertEqual(tla.lessor_signature['signedByName'], 'Dana Lessor')
		self.assertEqual(tla.lessor_signature['ipAddress'], '10.0.0.5')
		self.assertEqual(tla.lessor_signature['signedAt'], self.clock.now().isoformat())
		self.assertTrue(tla.lessor_signature['consentToEsign'])
		self.assertIsNone(tla.signed_at)
		self.assertEqual(self.notifier.kinds(), ['tla_ready'])
		self.assertEqual(self.notifier.sent_to('tla_ready'), [self.lessee.id])

		self.clock.advance(minutes=5)
		tla = self.signing.sign(
			tla.id, self.lessee.id, 'lessee', 'Lee Lessee',
			insurance_option='existing_policy',
			locations={'pickup': {'address': '100 Main St, Dallas, TX'}},
		).record
		self.assertEqual(tla.status, TLAStatus.SIGNED)
		self.assertEqual(tla.signed_at, self.clock.now())
		self.assertEqual(tla.insurance['option'], 'existing_policy')
		self.assertEqual(tla.insurance['confirmedBy'], self.lessee.id)
		self.assertEqual(tla.locations['pickup']['address'], '100 Main St, Dallas, TX')
		self.assertEqual(self.notifier.sent_to('tla_signed'), sorted([self.lessor.id, self.lessee.id]))

		tla.match.refresh_from_db()
		self.assertEqual(tla.match.status, MatchStatus.TLA_SIGNED)

	def test_lessee_then_lessor(self):
		tla = self._agreement()

		tla = self.signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee').record
		self.assertEqual(tla.status, TLAStatus.PENDING_LESSOR)
		self.assertIsNotNone(tla.lessee_signature)

		tla = self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor').record
		self.assertEqual(tla.status, TLAStatus.SIGNED)
		self.assertTrue(tla.is_fully_signed)

	@override_settings(TLA_ENFORCE_SIGNING_ORDER=True)
	def test_signing_order_can_be_enforced(self):
		signing = TLASigningEngine(clock=self.clock, notifier=self.notifier)
		tla = self._agreement()
		with self.assertRaises(InvalidTransitionError):
			signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee')

		signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor')
		tla = signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee').record
		self.assertEqual(tla.status, TLAStatus.SIGNED)

	def test_signing_twice_is_rejected(self):
		tla = self._agreement()
		self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor')

		with self.assertRaises(AlreadySignedError):
			self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor Again')

		tla.refresh_from_db()
		self.assertEqual(tla.lessor_signature['signedByName'], 'Dana Lessor')

	def test_only_role_owner_can_sign(self):
		tla = self._agreement()
		with self.assertRaises(ForbiddenError):
			self.signing.sign(tla.id, self.lessee.id, 'lessor', 'Lee Lessee')
		with self.assertRaises(ForbiddenError):
			self.signing.sign(tla.id, self.outsider.id, 'lessee', 'Nobody')

	def test_signature_name_required(self):
		tla = self._agreement()
		with self.assertRaises(PreconditionError):
			self.signing.sign(tla.id, self.lessor.id, 'lessor', '   ')

	def test_stale_signature_write_is_refused(self):
		tla = self._agreement()
		stale = AgreementStore().get(tla.id)
		self.signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee')

		# A lessor write prepared before the lessee signed must not land
		written = AgreementStore().update_if(
			stale, TLAStatus.PENDING_LESSOR, self.clock.now(),
			{'lessor_signature__isnull': True, 'lessee_signature__isnull': True},
			status=TLAStatus.PENDING_LESSEE,
		)
		self.assertFalse(written)
		tla.refresh_from_db()
		self.assertEqual(tla.status, TLAStatus.PENDING_LESSOR)

	def test_signature_lands_when_other_party_signs_mid_write(self):
		tla = self._agreement()
		lessee_signs = partial(self.signing.sign, tla.id, self.lessee.id, 'lessee', 'Lee Lessee')

		class LesseeSignsFirst(AgreementStore):
			raced = False

			def update_if(store, *args, **kwargs):
				if not store.raced:
					store.raced = True
					lessee_signs()
				return super().update_if(*args, **kwargs)

		racing = TLASigningEngine(store=LesseeSignsFirst(), clock=self.clock, notifier=self.notifier)
		result = racing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor')

		self.assertEqual(result.record.status, TLAStatus.SIGNED)
		self.assertEqual(result.record.lessor_signature['signedByName'], 'Dana Lessor')
		self.assertEqual(result.record.lessee_signature['signedByName'], 'Lee Lessee')
		self.assertIsNotNone(result.record.signed_at)
		self.assertEqual(self.notifier.sent_to('tla_signed'), sorted([self.lessor.id, self.lessee.id]))

	def test_store_refuses_moves_outside_the_table(self):
		tla = self._agreement()
		with self.assertRaises(InvalidTransitionError):
			AgreementStore().transition(tla, TLAStatus.COMPLETED, self.clock.now())
		tla.refresh_from_db()
		self.assertEqual(tla.status, TLAStatus.PENDING_LESSOR)

	def test_cannot_sign_voided_agreement(self):
		tla = self._agreement()
		self.signing.void(tla.id, self.staff.id, 'Duplicate booking')
		with self.assertRaises(InvalidTransitionError):
			self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor')

	def test_staff_void_keeps_signatures(self):
		tla = self._signed_agreement()
		tla = self.signing.void(tla.id, self.staff.id, 'Load cancelled by shipper').record

		self.assertEqual(tla.status, TLAStatus.VOIDED)
		self.assertEqual(tla.voided_reason, 'Load cancelled by shipper')
		self.assertEqual(tla.voided_at, self.clock.now())
		self.assertIsNotNone(tla.lessor_signature)
		self.assertIsNotNone(tla.lessee_signature)
		self.assertEqual(self.notifier.sent_to('tla_voided'), sorted([self.lessor.id, self.lessee.id]))

	def test_void_is_staff_only_and_not_after_completion(self):
		tla = self._agreement()
		with self.assertRaises(ForbiddenError):
			self.signing.void(tla.id, self.lessee.id, 'Changed my mind')

		completed = TripLeaseAgreement.objects.filter(pk=tla.pk)
		completed.update(status=TLAStatus.COMPLETED)
		with self.assertRaises(InvalidTransitionError):
			self.signing.void(tla.id, self.staff.id, 'Too late')

	def test_rendered_text_shows_parties_and_signatures(self):
		tla = self._signed_agreement()
		text = render_tla_text(tla)

		self.assertIn('Lone Star Haulers LLC', text)
		self.assertIn('Peach State Freight', text)
		self.assertIn('Signature: Dana Lessor', text)
		self.assertIn('[x] Existing policy', text)
		self.assertIn('$2,500.00', text)


class AgreementTransitionTableTests(TestCase):

	def test_terminal_statuses_have_no_exits(self):
		for status in (TLAStatus.COMPLETED, TLAStatus.VOIDED):
			for target in TLAStatus:
				self.assertFalse(can_transition(status, target))

	def test_signing_edges(self):
		# lessee first keeps the agreement waiting on the lessor
		self.assertTrue(can_transition(TLAStatus.PENDING_LESSOR, TLAStatus.PENDING_LESSOR))
		self.assertTrue(can_transition(TLAStatus.PENDING_LESSEE, TLAStatus.SIGNED))
		self.assertFalse(can_transition(TLAStatus.PENDING_LESSEE, TLAStatus.PENDING_LESSOR))
		self.assertFalse(can_transition(TLAStatus.PENDING_LESSOR, TLAStatus.IN_PROGRESS))
		self.assertFalse(can_transition(TLAStatus.SIGNED, TLAStatus.COMPLETED))
		for status in (TLAStatus.PENDING_LESSOR, TLAStatus.PENDING_LESSEE, TLAStatus.SIGNED, TLAStatus.IN_PROGRESS):
			self.assertTrue(can_transition(status, TLAStatus.VOIDED))


class TripTrackingTests(LeaseFlowTestCase):

	def test_start_requires_signed_agreement(self):
		tla = self._agreement()
		with self.assertRaises(InvalidTransitionError):
			self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee')

	def test_start_requires_party(self):
		tla = self._signed_agreement()
		with self.assertRaises(ForbiddenError):
			self.tracker.start(tla.id, self.outsider.id, 'Nobody')

	def test_start_moves_driver_match_and_load(self):
		tla = self._signed_agreement()
		tla = self.tracker.start(tla.id, self.lessor.id, 'Dana Lessor').record

		self.assertEqual(tla.status, TLAStatus.IN_PROGRESS)
		self.assertEqual(tla.trip_tracking['startedBy'], self.lessor.id)
		self.assertEqual(tla.trip_tracking['startedByName'], 'Dana Lessor')

		self.driver.refresh_from_db()
		self.load.refresh_from_db()
		tla.match.refresh_from_db()
		self.assertEqual(self.driver.availability, 'on_trip')
		self.assertEqual(self.load.status, 'in_transit')
		self.assertEqual(tla.match.status, MatchStatus.IN_PROGRESS)
		self.assertEqual(self.notifier.sent_to('trip_started'), sorted([self.lessor.id, self.lessee.id]))

	def test_end_without_start_is_a_precondition_failure(self):
		tla = self._signed_agreement()
		with self.assertRaises(PreconditionError):
			self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee')

	def test_end_records_duration(self):
		tla = self._signed_agreement()
		self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee')
		self.clock.advance(hours=6, minutes=10)
		result = self.tracker.end(tla.id, self.lessor.id, 'Dana Lessor')
		tla = result.record

		self.assertEqual(tla.status, TLAStatus.COMPLETED)
		self.assertEqual(tla.trip_tracking['durationMinutes'], 370)
		self.assertEqual(tla.trip_tracking['endedByName'], 'Dana Lessor')
		self.assertEqual(result.extra['trip_duration'], '6 hours 10 min')

		self.load.refresh_from_db()
		tla.match.refresh_from_db()
		self.assertEqual(self.load.status, 'delivered')
		self.assertEqual(self.load.delivered_at, self.clock.now())
		self.assertEqual(tla.match.status, MatchStatus.COMPLETED)

		completed = [e for e in self.notifier.events if e.kind == 'trip_completed']
		self.assertEqual(len(completed), 2)
		self.assertEqual(completed[0].payload['tripDuration'], '6 hours 10 min')

	def test_end_twice_is_invalid(self):
		tla = self._completed_agreement()
		with self.assertRaises(InvalidTransitionError):
			self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee')

	def test_post_trip_availability(self):
		tla = self._signed_agreement()
		with self.assertRaises(InvalidTransitionError):
			self.tracker.set_post_trip_availability(tla.id, mark_available=True)

		tla = self._complete(tla)
		self.tracker.set_post_trip_availability(tla.id, mark_available=False, actor_id=self.lessor.id)
		self.driver.refresh_from_db()
		self.assertEqual(self.driver.availability, 'off_duty')

		self.tracker.set_post_trip_availability(tla.id, mark_available=True)
		self.driver.refresh_from_db()
		self.assertEqual(self.driver.availability, 'available')

		with self.assertRaises(ForbiddenError):
			self.tracker.set_post_trip_availability(tla.id, mark_available=True, actor_id=self.outsider.id)

	def _complete(self, tla):
		self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee')
		self.clock.advance(minutes=45)
		return self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee').record


class TripDurationTests(TestCase):

	def test_format_trip_duration(self):
		self.assertEqual(format_trip_duration(125), '2 hours 5 min')
		self.assertEqual(format_trip_duration(120), '2 hours')
		self.assertEqual(format_trip_duration(45), '45 minutes')
		self.assertEqual(format_trip_duration(60), '1 hour')
		self.assertEqual(format_trip_duration(61), '1 hour 1 min')

	def test_duration_rounds_to_nearest_minute(self):
		clock = FixedClock()
		start = clock.now()
		self.assertEqual(trip_duration_minutes(start, clock.advance(minutes=125, seconds=29)), 125)
		self.assertEqual(trip_duration_minutes(start, start + timedelta(minutes=125, seconds=30)), 126)


class DriverRatingTests(LeaseFlowTestCase):

	def test_running_average_rounds_half_up(self):
		self.assertEqual(compute_running_average(4.0, 2, 5), (4.3, 3))
		self.assertEqual(compute_running_average(0, 0, 4), (4.0, 1))
		self.assertEqual(compute_running_average(4.5, 1, 4), (4.3, 2))  # 4.25 -> 4.3

	def test_ten_perfect_ratings(self):
		rating, count = 0, 0
		for _ in range(10):
			rating, count = compute_running_average(rating, count, 5)
		self.assertEqual((rating, count), (5.0, 10))

	def test_rate_driver_updates_aggregate_and_flags_agreement(self):
		Driver.objects.filter(pk=self.driver.pk).update(rating=4.0, rating_count=2)
		tla = self._completed_agreement()

		result = self.ratings.rate_driver(tla.id, self.lessee.id, 5, comment='On time, careful')
		self.assertEqual(result.extra, {'rating': 4.3, 'rating_count': 3})

		self.driver.refresh_from_db()
		tla.refresh_from_db()
		self.assertEqual(self.driver.rating, 4.3)
		self.assertEqual(self.driver.rating_count, 3)
		self.assertEqual(self.driver.last_rated_at, self.clock.now())
		self.assertTrue(tla.rated)
		self.assertEqual(tla.rating_given, 5)
		self.assertEqual(tla.rating_comment, 'On time, careful')

		history = DriverRating.objects.get(tla=tla)
		self.assertEqual(history.rating, 5)
		self.assertEqual(history.rated_by_company, 'Peach State Freight')
		self.assertEqual(history.trip_origin, 'Dallas, TX')

	def test_second_rating_is_rejected(self):
		tla = self._completed_agreement()
		self.ratings.rate_driver(tla.id, self.lessee.id, 4)

		with self.assertRaises(AlreadyRatedError):
			self.ratings.rate_driver(tla.id, self.lessee.id, 5)

		self.driver.refresh_from_db()
		self.assertEqual((self.driver.rating, self.driver.rating_count), (4.0, 1))

	def test_only_lessee_rates_completed_trips(self):
		tla = self._signed_agreement()
		with self.assertRaises(InvalidTransitionError):
			self.ratings.rate_driver(tla.id, self.lessee.id, 5)

		tla = self._complete(tla)
		with self.assertRaises(ForbiddenError):
			self.ratings.rate_driver(tla.id, self.lessor.id, 5)

	def test_score_must_be_one_to_five(self):
		tla = self._completed_agreement()
		for score in (0, 6, 4.5, True):
			with self.assertRaises(PreconditionError):
				self.ratings.rate_driver(tla.id, self.lessee.id, score)

	def test_retries_are_bounded(self):
		tla = self._completed_agreement()
		with patch.object(RatingAggregator, '_rate_once', side_effect=_LostRace()) as mock_rate:
			with self.assertRaises(ConflictError):
				self.ratings.rate_driver(tla.id, self.lessee.id, 5)
		self.assertEqual(mock_rate.call_count, 3)

	def test_lost_race_then_success(self):
		tla = self._completed_agreement()
		real_rate_once = RatingAggregator._rate_once
		calls = []

		def flaky(aggregator, *args):
			calls.append(args)
			if len(calls) == 1:
				raise _LostRace()
			return real_rate_once(aggregator, *args)

		with patch.object(RatingAggregator, '_rate_once', autospec=True, side_effect=flaky):
			self.ratings.rate_driver(tla.id, self.lessee.id, 5)

		self.assertEqual(len(calls), 2)
		self.driver.refresh_from_db()
		self.assertEqual(self.driver.rating_count, 1)

	def test_history_failure_does_not_undo_rating(self):
		tla = self._completed_agreement()
		with patch.object(DriverRating.objects, 'create', side_effect=RuntimeError('disk full')):
			self.ratings.rate_driver(tla.id, self.lessee.id, 3)

		self.driver.refresh_from_db()
		self.assertEqual(self.driver.rating_count, 1)
		self.assertFalse(DriverRating.objects.exists())

	def _complete(self, tla):
		self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee')
		self.clock.advance(minutes=30)
		return self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee').record


class ConcurrentLeaseTests(LeaseFlowMixin, TransactionTestCase):
	"""Real threads where the database has row locks, sequential calls on SQLite."""

	def test_ten_concurrent_perfect_ratings(self):
		agreements = []
		for _ in range(10):
			self.load = make_load(self.lessee)
			agreements.append(self._completed_agreement())

		outcomes = run_concurrently(*[
			partial(self.ratings.rate_driver, tla.id, self.lessee.id, 5) for tla in agreements
		])

		self.assertEqual([o for o in outcomes if isinstance(o, Exception)], [])
		self.driver.refresh_from_db()
		self.assertEqual((self.driver.rating, self.driver.rating_count), (5.0, 10))
		self.assertEqual(DriverRating.objects.filter(driver=self.driver).count(), 10)
		self.assertFalse(TripLeaseAgreement.objects.filter(rated=False).exists())

	def test_both_parties_signing_together_both_land(self):
		tla = self._agreement()

		outcomes = run_concurrently(
			partial(self.signing.sign, tla.id, self.lessor.id, 'lessor', 'Dana Lessor'),
			partial(self.signing.sign, tla.id, self.lessee.id, 'lessee', 'Lee Lessee'),
		)

		self.assertEqual([o for o in outcomes if isinstance(o, Exception)], [])
		tla.refresh_from_db()
		self.assertEqual(tla.status, TLAStatus.SIGNED)
		self.assertIsNotNone(tla.lessor_signature)
		self.assertIsNotNone(tla.lessee_signature)
		self.assertIsNotNone(tla.signed_at)


class LeaseLifecycleScenarioTests(LeaseFlowTestCase):

	def test_counter_to_rating(self):
		# Lessee requests the driver at 2500, lessor counters at 3000
		match = self.negotiation.create(
			'load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 2500},
		).record
		match = self.negotiation.respond(match.id, self.lessor.id, 'counter', terms={'rate': 3000}).record
		self.assertEqual(match.recipient_owner_id, self.lessee.id)

		match = self.negotiation.respond(match.id, self.lessee.id, 'accept').record
		self.assertEqual(match.status, MatchStatus.ACCEPTED)

		tla = self.signing.create_for_match(match.id, self.lessee.id).record
		self.assertEqual(tla.payment['amount'], 3000.0)

		tla = self.signing.sign(tla.id, self.lessor.id, 'lessor', 'Dana Lessor').record
		self.assertEqual(tla.status, TLAStatus.PENDING_LESSEE)

		tla = self.signing.sign(tla.id, self.lessee.id, 'lessee', 'Lee Lessee', insurance_option='existing_policy').record
		self.assertEqual(tla.status, TLAStatus.SIGNED)
		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.TLA_SIGNED)

		tla = self.tracker.start(tla.id, self.lessee.id, 'Lee Lessee').record
		self.assertEqual(tla.status, TLAStatus.IN_PROGRESS)
		self.driver.refresh_from_db()
		self.assertEqual(self.driver.availability, 'on_trip')

		self.clock.advance(hours=6, minutes=10)
		tla = self.tracker.end(tla.id, self.lessee.id, 'Lee Lessee').record
		self.assertEqual(tla.trip_tracking['durationMinutes'], 370)
		match.refresh_from_db()
		self.load.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.COMPLETED)
		self.assertEqual(self.load.status, 'delivered')

		self.ratings.rate_driver(tla.id, self.lessee.id, 5)
		self.driver.refresh_from_db()
		self.assertEqual((self.driver.rating, self.driver.rating_count), (5.0, 1))

		self.assertEqual(self.notifier.kinds(), [
			'match_request', 'match_countered', 'match_accepted',
			'tla_ready', 'match_accepted',
			'tla_ready',
			'tla_signed', 'tla_signed',
			'trip_started', 'trip_started',
			'trip_completed', 'trip_completed',
		])


class AgreementApiTests(LeaseFlowTestCase):

	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()

	def _call(self, view, user, method='post', data=None, **kwargs):
		request = getattr(self.factory, method)('/api/agreements/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_full_flow_over_http(self):
		match = self._accepted_match()

		response = self._call(views.create_agreement, self.lessor, match_id=match.id)
		self.assertEqual(response.status_code, 201)
		tla_id = response.data['agreement']['id']

		response = self._call(views.sign_agreement, self.lessor, data={
			'role': 'lessor', 'signature_name': 'Dana Lessor', 'consent_to_esign': True,
		}, tla_id=tla_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['agreement']['status'], 'pending_lessee')
		self.assertEqual(response.data['agreement']['lessor_signature']['ipAddress'], '127.0.0.1')

		response = self._call(views.sign_agreement, self.lessee, data={
			'role': 'lessee', 'signature_name': 'Lee Lessee', 'consent_to_esign': True,
			'insurance_option': 'trip_coverage',
		}, tla_id=tla_id)
		self.assertEqual(response.data['agreement']['status'], 'signed')

		response = self._call(views.start_trip, self.lessee, tla_id=tla_id)
		self.assertEqual(response.data['agreement']['status'], 'in_progress')

		response = self._call(views.end_trip, self.lessee, tla_id=tla_id)
		self.assertEqual(response.data['agreement']['status'], 'completed')
		self.assertIn('trip_duration', response.data)

		response = self._call(views.post_trip_availability, self.lessor, data={'mark_available': True}, tla_id=tla_id)
		self.assertEqual(response.data['availability'], 'available')

		response = self._call(views.rate_driver, self.lessee, data={'rating': 4}, tla_id=tla_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['driver']['rating_count'], 1)

		response = self._call(views.rate_driver, self.lessee, data={'rating': 5}, tla_id=tla_id)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'already_rated')

		response = self._call(views.agreement_text, self.lessee, method='get', tla_id=tla_id)
		self.assertEqual(response.status_code, 200)
		self.assertIn(b'Lone Star Haulers LLC', response.content)

	def test_signing_requires_consent(self):
		tla = self._agreement()
		response = self._call(views.sign_agreement, self.lessor, data={
			'role': 'lessor', 'signature_name': 'Dana Lessor', 'consent_to_esign': False,
		}, tla_id=tla.id)
		self.assertEqual(response.status_code, 400)

	def test_agreement_hidden_from_other_fleets(self):
		tla = self._agreement()
		response = self._call(views.agreement_detail, self.outsider, method='get', tla_id=tla.id)
		self.assertEqual(response.status_code, 404)

		response = self._call(views.agreement_detail, self.lessor, method='get', tla_id=tla.id)
		self.assertEqual(response.status_code, 200)

	def test_void_requires_staff(self):
		tla = self._agreement()
		response = self._call(views.void_agreement, self.lessee, data={'reason': 'x'}, tla_id=tla.id)
		self.assertEqual(response.status_code, 403)

		response = self._call(views.void_agreement, self.staff, data={'reason': 'Duplicate'}, tla_id=tla.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['agreement']['status'], 'voided')
