"""Notification dispatcher delivering alerts to subscribed recipients.

Every send goes through a shared CircuitBreaker so a failing mail relay
is not hammered. Notification failures never propagate to ingestion
(graceful degradation): each recipient's outcome is recorded and the
alert's notified set is extended with the recipients that succeeded.
"""

import asyncio
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from aquaguard.alerts.repository import AlertRepository
from aquaguard.alerts.schemas import Alert
from aquaguard.notifications.config import NotificationConfig
from aquaguard.notifications.preferences import PreferenceRepository, is_eligible
from aquaguard.notifications.schemas import DeliveryResult, NotificationPreference
from aquaguard.notifications.senders import OutboundSender
from aquaguard.notifications.templates import render_alert_email
from aquaguard.observability.metrics import get_metrics
from aquaguard.resilience.circuit_breaker import CircuitBreaker, CircuitOpenError
from aquaguard.resilience.errors import NotificationError

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Resolves recipients for an alert and delivers to each of them.

    Args:
        sender: Outbound sender.
        preferences: Preference repository used to resolve recipients.
        alerts: Alert repository used to record notified recipients.
        config: Dispatch configuration.
        breaker: Circuit breaker; built from ``config`` if omitted.
    """

    def __init__(
        self,
        sender: OutboundSender,
        preferences: PreferenceRepository,
        alerts: AlertRepository,
        config: NotificationConfig | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._sender = sender
        self._preferences = preferences
        self._alerts = alerts
        self._breaker = breaker or CircuitBreaker(
            config=self._config.breaker_config(),
            name=f"notify_{sender.name}",
        )
        self._tz = ZoneInfo(self._config.quiet_hours_timezone)
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_sends)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def resolve_recipients(
        self,
        alert: Alert,
        now: datetime | None = None,
    ) -> list[NotificationPreference]:
        """Return the preferences whose filters accept ``alert``."""
        now = now or datetime.now(timezone.utc)
        candidates = await self._preferences.list_enabled()
        return [
            pref
            for pref in candidates
            if is_eligible(pref, alert, now, self._tz, self._config.quiet_hours_overnight)
        ]

    async def dispatch(
        self,
        alert: Alert,
        recipients: list[NotificationPreference],
    ) -> list[DeliveryResult]:
        """Send ``alert`` to every recipient concurrently.

        One recipient's failure never prevents delivery to the others.
        """
        if not recipients:
            return []

        subject, body = render_alert_email(alert)
        results = await asyncio.gather(
            *(self._send_one(pref, subject, body) for pref in recipients)
        )
        self._record_delivery(alert, results)
        return list(results)

    async def notify(
        self,
        alert: Alert,
        recipients: list[NotificationPreference] | None = None,
    ) -> list[DeliveryResult]:
        """Resolve, dispatch and record notified recipients. Never raises.

        Args:
            alert: Newly created alert.
            recipients: Already resolved recipients; resolved here if None.
        """
        try:
            if recipients is None:
                recipients = await self.resolve_recipients(alert)
            if not recipients:
                logger.info("No eligible recipients for alert %s", alert.alert_id)
                return []

            results = await self.dispatch(alert, recipients)

            delivered = [r.user_id for r in results if r.success]
            if delivered:
                await self._alerts.add_notified_recipients(alert.alert_id, delivered)
            return results
        except Exception as e:
            logger.error("Notification processing failed for alert %s: %s", alert.alert_id, e)
            return []

    async def _deliver(self, to: str, subject: str, body: str) -> None:
        if not await self._sender.send(to, subject, body):
            raise NotificationError(f"{self._sender.name} rejected message to {to}")

    async def _send_one(
        self,
        preference: NotificationPreference,
        subject: str,
        body: str,
    ) -> DeliveryResult:
        async with self._semaphore:
            try:
                await self._breaker.call(self._deliver, preference.email, subject, body)
                return DeliveryResult(preference.user_id, preference.email, True)
            except CircuitOpenError as e:
                return DeliveryResult(
                    preference.user_id, preference.email, False, str(e), circuit_open=True
                )
            except Exception as e:
                logger.warning(
                    "Delivery to %s (%s) failed: %s", preference.user_id, preference.email, e,
                )
                return DeliveryResult(
                    preference.user_id, preference.email, False, str(e) or type(e).__name__
                )

    def _record_delivery(self, alert: Alert, results: list[DeliveryResult]) -> None:
        successes = [r.user_id for r in results if r.success]
        failures = [r.user_id for r in results if not r.success]
        circuit_open = sum(1 for r in results if r.circuit_open)

        metrics = get_metrics()
        metrics.record_notification("success", len(successes))
        metrics.record_notification("circuit_open", circuit_open)
        metrics.record_notification("failure", len(failures) - circuit_open)

        if failures and not successes:
            logger.error(
                "Alert %s (%s) failed ALL recipients: %s",
                alert.alert_id, alert.severity, failures,
            )
        elif failures:
            logger.warning(
                "Alert %s partial delivery: ok=%s failed=%s",
                alert.alert_id, successes, failures,
            )
        else:
            logger.debug("Alert %s delivered to all recipients: %s", alert.alert_id, successes)
