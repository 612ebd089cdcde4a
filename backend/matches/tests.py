from datetime import date, timedelta
from functools import partial
from unittest.mock import patch

from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import (
	FixedClock,
	RecordingNotifier,
	FailingNotifier,
	make_owner,
	make_driver,
	make_load,
	run_concurrently,
)
from drivers.models import Driver
from services.core import (
	ConflictError,
	ExpiredError,
	ForbiddenError,
	InvalidTransitionError,
	NotFoundError,
	OperationTimeoutError,
	PreconditionError,
)
from services.matching import (
	calculate_match_score,
	compliance_status,
	find_matching_drivers,
	find_matching_loads,
	match_quality_label,
)
from services.negotiation import MatchNegotiationEngine, MatchStore
from xtrafleet_backend.views import health_check
from .models import Match, MatchStatus, TERMINAL_STATUSES, can_transition
from .tasks import sweep_expired_matches_task
from .views import create_match, respond_to_match, cancel_match, candidate_drivers


class MatchNegotiationTests(TestCase):
	def setUp(self):
		self.lessee = make_owner('lessee')   # owns the load
		self.lessor = make_owner('lessor')   # owns the driver
		self.outsider = make_owner('outsider')
		self.driver = make_driver(self.lessor)
		self.load = make_load(self.lessee)

		self.clock = FixedClock()
		self.notifier = RecordingNotifier()
		self.engine = MatchNegotiationEngine(clock=self.clock, notifier=self.notifier)

	def _create(self, initiated_by='load_owner', rate=2500, driver=None, load=None):
		driver = driver or self.driver
		load = load or self.load
		initiator = load.owner if initiated_by == 'load_owner' else driver.owner
		result = self.engine.create(
			initiated_by=initiated_by,
			initiator_id=initiator.id,
			load_id=load.id,
			driver_id=driver.id,
			terms={'rate': rate},
		)
		return result.record

	# ---------------------- create ----------------------

	def test_create_opens_pending_match_with_fixed_expiry(self):
		match = self._create()

		self.assertEqual(match.status, MatchStatus.PENDING)
		self.assertEqual(match.recipient_owner_id, self.lessor.id)
		self.assertEqual(match.expires_at, self.clock.now() + timedelta(hours=48))
		self.assertEqual(match.original_terms, {'rate': 2500.0})
		self.assertEqual(match.load_snapshot['origin'], 'Dallas, TX')
		self.assertEqual(match.driver_snapshot['name'], 'Sam Carter')
		self.assertGreater(match.match_score, 0)
		self.assertEqual(self.notifier.kinds(), ['match_request'])
		self.assertEqual(self.notifier.sent_to('match_request'), [self.lessor.id])

	def test_driver_owner_offer_notifies_load_owner(self):
		match = self._create(initiated_by='driver_owner')

		self.assertEqual(match.recipient_owner_id, self.lessee.id)
		self.assertEqual(match.initiator_id, self.lessor.id)
		self.assertEqual(self.notifier.sent_to('driver_offer_request'), [self.lessee.id])

	def test_create_rejects_own_fleet_pairing(self):
		own_driver = make_driver(self.lessee, name='Own Driver')
		with self.assertRaises(PreconditionError):
			self._create(driver=own_driver)

	def test_create_requires_initiator_to_own_the_side(self):
		with self.assertRaises(ForbiddenError):
			self.engine.create('load_owner', self.outsider.id, self.load.id, self.driver.id, {'rate': 100})

	def test_create_rejects_non_positive_rate(self):
		with self.assertRaises(PreconditionError):
			self._create(rate=0)

	def test_create_rejects_non_finite_rate(self):
		for rate in ('nan', 'inf', float('-inf')):
			with self.assertRaises(PreconditionError):
				self._create(rate=rate)
		self.assertFalse(Match.objects.exists())

	def test_counter_rejects_non_finite_rate(self):
		match = self._create()
		with self.assertRaises(PreconditionError):
			self.engine.respond(match.id, self.lessor.id, 'counter', terms={'rate': 'nan'})
		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.PENDING)
		self.assertIsNone(match.counter_terms)

	def test_other_integrity_errors_are_not_reported_as_conflicts(self):
		failure = IntegrityError('NOT NULL constraint failed: matches.expires_at')
		with patch.object(Match.objects, 'create', side_effect=failure):
			with self.assertRaises(IntegrityError):
				self._create()

	def test_create_unknown_load(self):
		with self.assertRaises(NotFoundError):
			self.engine.create('load_owner', self.lessee.id, 999999, self.driver.id, {'rate': 100})

	def test_create_rejects_load_already_matched(self):
		self.load.status = 'matched'
		self.load.save(update_fields=['status'])
		with self.assertRaises(PreconditionError):
			self._create()

	def test_second_open_match_for_same_pair_conflicts(self):
		self._create()
		with self.assertRaises(ConflictError):
			self._create(initiated_by='driver_owner')

	def test_unique_constraint_rejects_racing_insert(self):
		self._create()
		# Simulate a racer that passed the pre-check before the first insert
		with patch.object(MatchStore, 'find_open', return_value=None):
			with self.assertRaises(ConflictError):
				self._create()
		self.assertEqual(Match.objects.count(), 1)

	def test_new_match_allowed_after_previous_is_terminal(self):
		first = self._create()
		self.engine.respond(first.id, self.lessor.id, 'decline', reason='Driver booked')

		second = self._create()
		self.assertNotEqual(first.id, second.id)

	# ---------------------- respond ----------------------

	def test_counter_flips_recipient_and_supersedes_terms(self):
		match = self._create()
		result = self.engine.respond(match.id, self.lessor.id, 'counter', terms={'rate': 3000, 'notes': 'Fuel is up'})
		match = result.record

		self.assertEqual(match.status, MatchStatus.COUNTERED)
		self.assertEqual(match.recipient_owner_id, self.lessee.id)
		self.assertEqual(match.counter_terms['rate'], 3000.0)
		self.assertEqual(match.settlement_terms['rate'], 3000.0)
		self.assertEqual(match.original_terms['rate'], 2500.0)
		self.assertEqual(self.notifier.sent_to('match_countered'), [self.lessee.id])

		countered = [e for e in self.notifier.events if e.kind == 'match_countered'][0]
		self.assertEqual(countered.payload['oldStatus'], 'pending')
		self.assertEqual(countered.payload['newStatus'], 'countered')
		self.assertEqual(countered.payload['previousRate'], 2500.0)

	def test_counter_does_not_extend_expiry(self):
		match = self._create()
		expires_at = match.expires_at
		self.clock.advance(hours=40)
		match = self.engine.respond(match.id, self.lessor.id, 'counter', terms={'rate': 3000}).record
		self.assertEqual(match.expires_at, expires_at)

	def test_initiator_can_accept_a_counter(self):
		match = self._create()
		self.engine.respond(match.id, self.lessor.id, 'counter', terms={'rate': 3000})
		match = self.engine.respond(match.id, self.lessee.id, 'accept').record

		self.assertEqual(match.status, MatchStatus.ACCEPTED)
		self.assertEqual(match.responded_at, self.clock.now())
		self.assertEqual(self.notifier.sent_to('match_accepted'), [self.lessor.id])

	def test_decline_records_reason(self):
		match = self._create()
		match = self.engine.respond(match.id, self.lessor.id, 'decline', reason='Driver booked').record

		self.assertEqual(match.status, MatchStatus.DECLINED)
		self.assertEqual(match.decline_reason, 'Driver booked')
		declined = [e for e in self.notifier.events if e.kind == 'match_declined'][0]
		self.assertEqual(declined.payload['reason'], 'Driver booked')

	def test_only_recipient_can_respond(self):
		match = self._create()
		with self.assertRaises(ForbiddenError):
			self.engine.respond(match.id, self.lessee.id, 'accept')
		with self.assertRaises(ForbiddenError):
			self.engine.respond(match.id, self.outsider.id, 'accept')

	def test_counter_requires_terms(self):
		match = self._create()
		with self.assertRaises(PreconditionError):
			self.engine.respond(match.id, self.lessor.id, 'counter')

	def test_respond_to_terminal_match_is_invalid(self):
		match = self._create()
		self.engine.respond(match.id, self.lessor.id, 'decline')
		with self.assertRaises(InvalidTransitionError):
			self.engine.respond(match.id, self.lessor.id, 'accept')

	def test_unknown_match(self):
		with self.assertRaises(NotFoundError):
			self.engine.respond(999999, self.lessor.id, 'accept')

	# ---------------------- expiry ----------------------

	def test_late_accept_is_expired_and_persisted(self):
		match = self._create()
		self.clock.advance(hours=48, seconds=1)

		with self.assertRaises(ExpiredError):
			self.engine.respond(match.id, self.lessor.id, 'accept')

		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.EXPIRED)
		self.assertEqual(self.notifier.sent_to('match_expired'), sorted([self.lessee.id, self.lessor.id]))

		# Once expired, any further answer is still reported as expired
		with self.assertRaises(ExpiredError):
			self.engine.respond(match.id, self.lessor.id, 'accept')

	def test_expiry_is_reported_before_actor_check(self):
		match = self._create()
		self.clock.advance(hours=49)
		with self.assertRaises(ExpiredError):
			self.engine.respond(match.id, self.outsider.id, 'accept')

	def test_answer_exactly_at_expiry_instant_is_accepted(self):
		match = self._create()
		self.clock.advance(hours=48)
		match = self.engine.respond(match.id, self.lessor.id, 'accept').record
		self.assertEqual(match.status, MatchStatus.ACCEPTED)

	def test_hours_left(self):
		match = self._create()
		self.clock.advance(hours=10)
		self.assertEqual(self.engine.hours_left(match), 38)
		self.clock.advance(hours=50)
		self.assertEqual(self.engine.hours_left(match), 0)

	def test_sweep_expires_only_past_due_matches_and_is_idempotent(self):
		second_driver = make_driver(self.lessor, name='Lee Park')
		old = self._create()
		self.clock.advance(hours=24)
		fresh = self._create(driver=second_driver)
		self.clock.advance(hours=25)

		self.assertEqual(self.engine.sweep_expired(), 1)
		self.assertEqual(self.engine.sweep_expired(), 0)

		old.refresh_from_db()
		fresh.refresh_from_db()
		self.assertEqual(old.status, MatchStatus.EXPIRED)
		self.assertEqual(fresh.status, MatchStatus.PENDING)

	def test_sweep_skips_match_answered_concurrently(self):
		match = self._create()
		stale = MatchStore().get(match.id)
		self.engine.respond(match.id, self.lessor.id, 'accept')
		self.clock.advance(hours=49)

		# A sweep holding the stale pending row loses the conditional update
		self.assertFalse(self.engine._expire(stale, self.clock.now()))
		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.ACCEPTED)

	# ---------------------- concurrency ----------------------

	def test_stale_read_cannot_double_accept(self):
		match = self._create()
		store = MatchStore()
		first_read = store.get(match.id)
		second_read = store.get(match.id)

		store.transition(first_read, MatchStatus.ACCEPTED, self.clock.now())
		with self.assertRaises(ConflictError):
			store.transition(second_read, MatchStatus.ACCEPTED, self.clock.now())

		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.ACCEPTED)
		self.assertEqual(match.version, 2)

	def test_engine_rejects_second_accept(self):
		match = self._create()
		self.engine.respond(match.id, self.lessor.id, 'accept')
		with self.assertRaises(InvalidTransitionError):
			self.engine.respond(match.id, self.lessor.id, 'accept')

	def test_deadline_in_the_past_aborts_without_writing(self):
		match = self._create()
		with self.assertRaises(OperationTimeoutError):
			self.engine.respond(
				match.id, self.lessor.id, 'accept',
				deadline=self.clock.now() - timedelta(seconds=1),
			)
		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.PENDING)

	def test_notification_failure_never_blocks_transition(self):
		engine = MatchNegotiationEngine(clock=self.clock, notifier=FailingNotifier())
		match = engine.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 2500}).record
		match = engine.respond(match.id, self.lessor.id, 'accept').record
		self.assertEqual(match.status, MatchStatus.ACCEPTED)

	# ---------------------- cancel ----------------------

	def test_initiator_can_cancel(self):
		match = self._create()
		match = self.engine.cancel(match.id, self.lessee.id).record

		self.assertEqual(match.status, MatchStatus.CANCELLED)
		self.assertEqual(self.notifier.sent_to('match_cancelled'), [self.lessor.id])

	def test_recipient_cannot_cancel(self):
		match = self._create()
		with self.assertRaises(ForbiddenError):
			self.engine.cancel(match.id, self.lessor.id)

	def test_cannot_cancel_declined_match(self):
		match = self._create()
		self.engine.respond(match.id, self.lessor.id, 'decline')
		with self.assertRaises(InvalidTransitionError):
			self.engine.cancel(match.id, self.lessee.id)

	def test_cancel_after_expiry_expires_instead(self):
		match = self._create()
		self.clock.advance(hours=49)

		with self.assertRaises(ExpiredError):
			self.engine.cancel(match.id, self.lessee.id)

		match.refresh_from_db()
		self.assertEqual(match.status, MatchStatus.EXPIRED)
		self.assertEqual(self.notifier.sent_to('match_expired'), sorted([self.lessee.id, self.lessor.id]))
		self.assertNotIn('match_cancelled', self.notifier.kinds())

	# ---------------------- transition table ----------------------

	def test_terminal_statuses_have_no_exits(self):
		for status in TERMINAL_STATUSES:
			for target in MatchStatus:
				self.assertFalse(can_transition(status, target))
		self.assertTrue(can_transition(MatchStatus.COUNTERED, MatchStatus.COUNTERED))
		self.assertFalse(can_transition(MatchStatus.TLA_PENDING, MatchStatus.CANCELLED))


class ConcurrentResponseTests(TransactionTestCase):
	"""Committed transactions, so racing callers see each other's writes."""

	def setUp(self):
		self.lessee = make_owner('lessee')
		self.lessor = make_owner('lessor')
		self.driver = make_driver(self.lessor)
		self.load = make_load(self.lessee)
		self.engine = MatchNegotiationEngine(clock=FixedClock(), notifier=RecordingNotifier())

	def test_accept_and_decline_race_has_one_winner(self):
		match = self.engine.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 2500}).record

		outcomes = run_concurrently(
			partial(self.engine.respond, match.id, self.lessor.id, 'accept'),
			partial(self.engine.respond, match.id, self.lessor.id, 'decline', reason='Driver booked'),
		)
		winners = [o for o in outcomes if not isinstance(o, Exception)]
		losers = [o for o in outcomes if isinstance(o, Exception)]

		self.assertEqual(len(winners), 1)
		self.assertEqual(len(losers), 1)
		self.assertIsInstance(losers[0], (ConflictError, InvalidTransitionError))

		match.refresh_from_db()
		self.assertEqual(match.status, winners[0].record.status)
		self.assertEqual(match.version, 2)


class MatchExpirySweepTests(TestCase):
	def setUp(self):
		self.lessee = make_owner('lessee')
		self.lessor = make_owner('lessor')
		self.driver = make_driver(self.lessor)
		self.load = make_load(self.lessee)
		# Created three days ago, so the real clock sees it as past due
		engine = MatchNegotiationEngine(
			clock=FixedClock(timezone.now() - timedelta(days=3)),
			notifier=RecordingNotifier(),
		)
		self.match = engine.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 1800}).record

	def test_expire_matches_command(self):
		call_command('expire_matches')
		self.match.refresh_from_db()
		self.assertEqual(self.match.status, MatchStatus.EXPIRED)

	def test_expire_matches_dry_run_changes_nothing(self):
		call_command('expire_matches', dry_run=True)
		self.match.refresh_from_db()
		self.assertEqual(self.match.status, MatchStatus.PENDING)

	@patch('realtime.notifications.ChannelsNotificationPort.notify', return_value=True)
	def test_sweep_task_expires_and_notifies_both_fleets(self, mock_notify):
		self.assertEqual(sweep_expired_matches_task(), 1)
		self.assertEqual(mock_notify.call_count, 2)
		self.match.refresh_from_db()
		self.assertEqual(self.match.status, MatchStatus.EXPIRED)


class MatchApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.lessee = make_owner('lessee')
		self.lessor = make_owner('lessor')
		self.driver = make_driver(self.lessor)
		self.load = make_load(self.lessee)

	def _post(self, view, user, data=None, **kwargs):
		request = self.factory.post('/api/matches/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_create_match_endpoint(self):
		response = self._post(create_match, self.lessee, {
			'initiated_by': 'load_owner',
			'load_id': self.load.id,
			'driver_id': self.driver.id,
			'terms': {'rate': 2500, 'pickupDate': '2025-03-01'},
		})

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['match']['status'], 'pending')
		self.assertEqual(response.data['match']['original_terms']['pickupDate'], '2025-03-01')

	def test_counter_endpoint_requires_terms(self):
		response = self._post(create_match, self.lessee, {
			'initiated_by': 'load_owner',
			'load_id': self.load.id,
			'driver_id': self.driver.id,
			'terms': {'rate': 2500},
		})
		match_id = response.data['match']['id']

		response = self._post(respond_to_match, self.lessor, {'action': 'counter'}, match_id=match_id)
		self.assertEqual(response.status_code, 400)

	def test_engine_errors_use_standard_envelope(self):
		response = self._post(create_match, self.lessee, {
			'initiated_by': 'load_owner',
			'load_id': self.load.id,
			'driver_id': self.driver.id,
			'terms': {'rate': 2500},
		})
		match_id = response.data['match']['id']

		response = self._post(respond_to_match, self.lessee, {'action': 'accept'}, match_id=match_id)
		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'forbidden')
		self.assertFalse(response.data['success'])

		response = self._post(cancel_match, self.lessor, match_id=match_id)
		self.assertEqual(response.status_code, 403)

	def test_expired_offer_returns_410(self):
		engine = MatchNegotiationEngine(
			clock=FixedClock(timezone.now() - timedelta(days=3)),
			notifier=RecordingNotifier(),
		)
		match = engine.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 1800}).record

		response = self._post(respond_to_match, self.lessor, {'action': 'accept'}, match_id=match.id)
		self.assertEqual(response.status_code, 410)
		self.assertEqual(response.data['error'], 'expired')

	def test_health_reports_overdue_offers(self):
		engine = MatchNegotiationEngine(
			clock=FixedClock(timezone.now() - timedelta(days=3)),
			notifier=RecordingNotifier(),
		)
		engine.create('load_owner', self.lessee.id, self.load.id, self.driver.id, {'rate': 1800})

		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['database']['overdue_open_matches'], 1)
		self.assertEqual(response.data['services']['broker'], {'status': 'healthy', 'skipped': 'memory'})

	def test_candidates_endpoint_ranks_other_fleets_drivers(self):
		make_driver(self.lessee, name='Own Fleet')
		request = self.factory.get(f'/api/matches/candidates/{self.load.id}/')
		force_authenticate(request, user=self.lessee)
		response = candidate_drivers(request, load_id=self.load.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['candidates'][0]['driver_id'], self.driver.id)
		self.assertEqual(response.data['candidates'][0]['compliance'], 'green')

		request = self.factory.get(f'/api/matches/candidates/{self.load.id}/')
		force_authenticate(request, user=self.lessor)
		response = candidate_drivers(request, load_id=self.load.id)
		self.assertEqual(response.status_code, 404)


class MatchScoringTests(TestCase):
	def setUp(self):
		self.lessee = make_owner('lessee')
		self.lessor = make_owner('lessor')
		self.today = date.today()

	def test_compliance_bands(self):
		green = make_driver(self.lessor, name='Green')
		yellow = make_driver(self.lessor, name='Yellow', medical_card_expiry=self.today + timedelta(days=10))
		red = make_driver(self.lessor, name='Red', cdl_expiry=self.today - timedelta(days=1))
		missing = make_driver(self.lessor, name='Missing', cdl_license='')

		self.assertEqual(compliance_status(green, self.today), 'green')
		self.assertEqual(compliance_status(yellow, self.today), 'yellow')
		self.assertEqual(compliance_status(red, self.today), 'red')
		self.assertEqual(compliance_status(missing, self.today), 'red')

	def test_perfect_fit_scores_high(self):
		driver = make_driver(self.lessor, vehicle_type='reefer', certifications=['Hazmat'])
		driver.rating, driver.rating_count = 5.0, 4
		load = make_load(self.lessee, required_qualifications=['Reefer', 'Hazmat'])

		score = calculate_match_score(driver, load, self.today)
		self.assertEqual(score.total, 100)
		self.assertEqual(match_quality_label(score.total), 'Excellent')

	def test_missing_qualification_lowers_score(self):
		driver = make_driver(self.lessor, vehicle_type='flatbed', location='Denver, CO')
		load = make_load(self.lessee, required_qualifications=['Reefer'])

		score = calculate_match_score(driver, load, self.today)
		self.assertEqual(score.vehicle_match, 10)
		self.assertEqual(score.qualification_match, 0)
		self.assertEqual(score.location_score, 5)
		self.assertLess(score.total, 60)

	def test_ranking_skips_unavailable_and_non_compliant_drivers(self):
		near = make_driver(self.lessor, name='Near')
		far = make_driver(self.lessor, name='Far', location='Boise, ID')
		make_driver(self.lessor, name='Busy', availability='on_trip')
		make_driver(self.lessor, name='Lapsed', cdl_expiry=self.today - timedelta(days=5))
		load = make_load(self.lessee)

		candidates = find_matching_drivers(load, Driver.objects.all(), self.today)
		self.assertEqual([c.driver for c in candidates], [near, far])

	def test_load_ranking_for_a_driver_ignores_taken_loads(self):
		driver = make_driver(self.lessor)
		local = make_load(self.lessee)
		same_state = make_load(self.lessee, origin='Houston, TX')
		taken = make_load(self.lessee, status='matched')
		distant = make_load(self.lessee, origin='Boise, ID')

		candidates = find_matching_loads(driver, [distant, taken, same_state, local], self.today)
		self.assertEqual([c.load for c in candidates], [local, same_state, distant])
		self.assertTrue(all(c.compliance == 'green' for c in candidates))
