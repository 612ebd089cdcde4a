"""Fixtures shared by the app test suites."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

from django.db import connection, connections
from django.utils import timezone

from accounts.models import User
from drivers.models import Driver
from loads.models import Load
from realtime.notifications import NotificationPort


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start=None):
        self.current = start or timezone.now().replace(microsecond=0)

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingNotifier(NotificationPort):
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)
        return True

    def kinds(self):
        return [event.kind for event in self.events]

    def sent_to(self, kind):
        return sorted(event.recipient_id for event in self.events if event.kind == kind)


class FailingNotifier(NotificationPort):
    def notify(self, event):
        raise RuntimeError("notification backend down")


def make_owner(username, **fields):
    defaults = {
        'password': 'fleet1234',
        'email': f'{username}@example.com',
        'company_name': f'{username.title()} Freight',
        'role': 'owner_operator',
    }
    defaults.update(fields)
    return User.objects.create_user(username=username, **defaults)


def make_driver(owner, name='Sam Carter', **fields):
    far_future = date.today() + timedelta(days=365)
    defaults = {
        'location': 'Dallas, TX',
        'vehicle_type': 'dry_van',
        'cdl_license': 'TX-1234567',
        'cdl_expiry': far_future,
        'medical_card_expiry': far_future,
        'availability': 'available',
    }
    defaults.update(fields)
    return Driver.objects.create(owner=owner, name=name, **defaults)


def make_load(owner, **fields):
    defaults = {
        'origin': 'Dallas, TX',
        'destination': 'Atlanta, GA',
        'cargo': 'Paper goods',
        'weight': 42000,
        'price': 2800,
    }
    defaults.update(fields)
    return Load.objects.create(owner=owner, **defaults)


def run_concurrently(*calls):
    """
    Run each zero-argument callable on its own thread, released together,
    and return what each one returned or raised, in call order.

    SQLite has no row locks and its shared in-memory test database refuses
    concurrent writers, so there the calls run one after another.
    """
    if not connection.features.has_select_for_update:
        return [_outcome(call) for call in calls]

    barrier = threading.Barrier(len(calls))

    def worker(call):
        try:
            barrier.wait()
            return _outcome(call)
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(worker, calls))


def _outcome(call):
    try:
        return call()
    except Exception as e:
        return e
