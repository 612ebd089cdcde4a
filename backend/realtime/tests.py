from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core import mail
from django.test import TestCase, override_settings

from common.testing import make_owner
from .notifications import (
	ChannelsNotificationPort,
	NotificationEvent,
	push_owner_event,
	safe_notify,
)
from .tasks import deliver_notification_task, render_notification


class NotificationPortTests(TestCase):
	def setUp(self):
		self.owner = make_owner('lessor', legal_name='Lone Star Haulers LLC')
		self.event = NotificationEvent.for_owner('tla_ready', self.owner, {
			'tlaId': 7,
			'driverName': 'Sam Carter',
			'loadOrigin': 'Dallas, TX',
			'loadDestination': 'Atlanta, GA',
			'rate': 3000.0,
		})

	def test_event_addressed_to_owner(self):
		self.assertEqual(self.event.recipient_id, self.owner.id)
		self.assertEqual(self.event.recipient_email, 'lessor@example.com')
		self.assertEqual(self.event.recipient_name, 'Lone Star Haulers LLC')

	def test_render_notification(self):
		subject, body = render_notification(self.event.as_dict())

		self.assertEqual(subject, 'Trip Lease Agreement ready for your signature')
		self.assertIn('Hello Lone Star Haulers LLC', body)
		self.assertIn('Route: Dallas, TX -> Atlanta, GA', body)
		self.assertIn('Rate: $3,000.00', body)

	def test_default_port_emails_and_pushes(self):
		channel_layer = get_channel_layer()
		channel_name = async_to_sync(channel_layer.new_channel)()
		async_to_sync(channel_layer.group_add)(f'user_{self.owner.id}', channel_name)

		self.assertTrue(ChannelsNotificationPort().notify(self.event))

		self.assertEqual(len(mail.outbox), 1)
		self.assertEqual(mail.outbox[0].to, ['lessor@example.com'])

		message = async_to_sync(channel_layer.receive)(channel_name)
		self.assertEqual(message['type'], 'lease_event')
		self.assertEqual(message['kind'], 'tla_ready')
		self.assertEqual(message['payload']['tlaId'], 7)

	@override_settings(NOTIFICATIONS_ENABLED=False)
	def test_disabled_notifications_send_nothing(self):
		self.assertFalse(ChannelsNotificationPort().notify(self.event))
		self.assertEqual(len(mail.outbox), 0)

	def test_task_skips_events_without_email(self):
		event = self.event.as_dict()
		event['recipient_email'] = ''
		self.assertFalse(deliver_notification_task(event))
		self.assertEqual(len(mail.outbox), 0)

	@patch('realtime.tasks.send_mail', side_effect=ConnectionRefusedError('smtp down'))
	def test_task_reports_delivery_failure(self, mock_send):
		self.assertFalse(deliver_notification_task(self.event.as_dict()))
		mock_send.assert_called_once()

	@patch('realtime.notifications.get_channel_layer', return_value=None)
	def test_push_without_channel_layer(self, mock_layer):
		self.assertFalse(push_owner_event(self.event))

	def test_safe_notify_swallows_port_errors(self):
		port = ChannelsNotificationPort()
		with patch.object(port, 'notify', side_effect=RuntimeError('broker down')):
			self.assertFalse(safe_notify(port, self.event))
