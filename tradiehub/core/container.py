"""
Service container holding the long-lived collaborators of the API process.

Built once in the application lifespan and stored on ``app.state.container``.
Route handlers receive it through the ``Container`` dependency; tests build
their own container with fake collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from tradiehub.core.config import settings
from tradiehub.integrations.stripe import PaymentGateway, StripeGateway
from tradiehub.services.deliveryService import Notifier


@dataclass
class ServiceContainer:
    payment_gateway: PaymentGateway
    notifier: Notifier
    http_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_container() -> ServiceContainer:
    """Construct the production collaborators."""
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
    return ServiceContainer(
        payment_gateway=StripeGateway(),
        notifier=Notifier(http_client, settings.notification_timeout_seconds),
        http_client=http_client,
    )
