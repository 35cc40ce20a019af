"""
Tests for subscription endpoints:
- POST /api/v1/subscriptions (subscribe)
- GET /api/v1/subscriptions/confirm (confirm)
"""

import re

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.models.subscription import CONFIRMED, PENDING_CONFIRMATION, Subscription
from newsletter.services.subscriptions import (
    SUBSCRIPTION_TOKEN_LENGTH,
    SubscriberDirectory,
    generate_subscription_token,
)

SUBSCRIBE_URL = "/api/v1/subscriptions"
CONFIRM_URL = "/api/v1/subscriptions/confirm"


def _confirmation_link(text_body: str) -> str:
    match = re.search(r"https?://\S+/api/v1/subscriptions/confirm\?subscription_token=\w+", text_body)
    assert match is not None, text_body
    return match.group(0)


async def _subscription(db_session: AsyncSession, email: str) -> Subscription | None:
    result = await db_session.execute(select(Subscription).where(Subscription.email == email))
    return result.scalar_one_or_none()


class TestSubscribe:
    async def test_subscribe_creates_pending_subscription(
        self, async_client: AsyncClient, db_session: AsyncSession, email_client
    ):
        response = await async_client.post(
            SUBSCRIBE_URL, json={"email": "ursula@example.com", "name": "le guin"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == PENDING_CONFIRMATION

        subscription = await _subscription(db_session, "ursula@example.com")
        assert subscription is not None
        assert subscription.name == "le guin"
        assert subscription.status == PENDING_CONFIRMATION

    async def test_subscribe_sends_confirmation_email_with_link(
        self, async_client: AsyncClient, email_client
    ):
        await async_client.post(
            SUBSCRIBE_URL, json={"email": "ursula@example.com", "name": "le guin"}
        )

        assert len(email_client.sent) == 1
        sent = email_client.sent[0]
        assert sent.recipient == "ursula@example.com"
        link = _confirmation_link(sent.text_content)
        assert link in sent.html_content

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "not-an-email", "name": "Ursula"},
            {"email": "", "name": "Ursula"},
            {"email": "ursula@example.com", "name": ""},
            {"email": "ursula@example.com", "name": "   "},
            {"email": "ursula@example.com", "name": "Ursula <script>"},
            {"email": "ursula@example.com", "name": "a" * 257},
        ],
    )
    async def test_invalid_fields_return_400(
        self, async_client: AsyncClient, db_session: AsyncSession, email_client, body: dict
    ):
        response = await async_client.post(SUBSCRIBE_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] in {"INVALID_EMAIL", "INVALID_NAME"}
        assert email_client.sent == []
        assert await SubscriberDirectory(db_session).list_confirmed_subscribers() == []

    @pytest.mark.parametrize(
        "body",
        [{"name": "Ursula"}, {"email": "ursula@example.com"}, {}],
    )
    async def test_missing_fields_return_422(self, async_client: AsyncClient, body: dict):
        response = await async_client.post(SUBSCRIBE_URL, json=body)
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_duplicate_email_returns_409(
        self, async_client: AsyncClient, email_client
    ):
        body = {"email": "ursula@example.com", "name": "Ursula"}
        first = await async_client.post(SUBSCRIBE_URL, json=body)
        second = await async_client.post(SUBSCRIBE_URL, json=body)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "ALREADY_SUBSCRIBED"
        assert len(email_client.sent) == 1


class TestConfirm:
    async def test_confirmation_link_confirms_subscriber(
        self, async_client: AsyncClient, db_session: AsyncSession, email_client
    ):
        await async_client.post(
            SUBSCRIBE_URL, json={"email": "ursula@example.com", "name": "Ursula"}
        )
        link = _confirmation_link(email_client.sent[0].text_content)
        token = link.rsplit("=", 1)[1]

        response = await async_client.get(CONFIRM_URL, params={"subscription_token": token})

        assert response.status_code == 200
        assert response.json()["status"] == CONFIRMED
        assert await SubscriberDirectory(db_session).list_confirmed_subscribers() == [
            "ursula@example.com"
        ]

    async def test_confirming_twice_is_harmless(
        self, async_client: AsyncClient, email_client
    ):
        await async_client.post(
            SUBSCRIBE_URL, json={"email": "ursula@example.com", "name": "Ursula"}
        )
        token = _confirmation_link(email_client.sent[0].text_content).rsplit("=", 1)[1]

        for _ in range(2):
            response = await async_client.get(
                CONFIRM_URL, params={"subscription_token": token}
            )
            assert response.status_code == 200

    async def test_unknown_token_returns_401(self, async_client: AsyncClient, db_session):
        response = await async_client.get(
            CONFIRM_URL, params={"subscription_token": generate_subscription_token()}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_missing_token_returns_422(self, async_client: AsyncClient):
        response = await async_client.get(CONFIRM_URL)
        assert response.status_code == 422


class TestSubscriberDirectory:
    async def test_lists_only_confirmed_subscribers(
        self, db_session: AsyncSession, create_subscriber, confirmed_subscribers: list[str]
    ):
        await create_subscriber("pending@example.com", confirmed=False)

        emails = await SubscriberDirectory(db_session).list_confirmed_subscribers()

        assert sorted(emails) == sorted(confirmed_subscribers)


def test_subscription_token_is_alphanumeric():
    token = generate_subscription_token()
    assert len(token) == SUBSCRIPTION_TOKEN_LENGTH
    assert token.isalnum()
    assert token != generate_subscription_token()
