"""Outbound notifications: email, Telegram and push.

``NotificationDispatcher.send`` is the single entry point used by the
alert and stock engines. A channel that is not configured, or whose
delivery fails, returns False and logs; nothing here raises.
"""

import asyncio
import html
import smtplib
import ssl
from dataclasses import asdict, dataclass
from decimal import Decimal
from email.message import EmailMessage
from typing import Dict, Optional, Tuple

import httpx
import structlog

from pricehunter.config import settings

logger = structlog.get_logger(__name__)

EMAIL = "email"
TELEGRAM = "telegram"
PUSH = "push"
CHANNELS = (EMAIL, TELEGRAM, PUSH)

PRICE_ALERT = "price_alert"
BACK_IN_STOCK = "back_in_stock"
TEMPLATE_KINDS = (PRICE_ALERT, BACK_IN_STOCK)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


@dataclass(frozen=True)
class NotificationTarget:
    """Where to deliver: a channel and its address (email, chat id, push token)."""

    channel: str
    address: str


@dataclass(frozen=True)
class NotificationPayload:
    product_name: str
    product_url: str
    store_name: str
    price: Decimal
    currency: str
    target_price: Optional[Decimal] = None


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------

def _money(currency: str, amount: Optional[Decimal]) -> str:
    return f"{currency} {Decimal(amount):,.2f}" if amount is not None else "-"


def render_email(kind: str, payload: NotificationPayload) -> Tuple[str, str, str]:
    """Return (subject, plain_text, html) for a notification."""
    name = payload.product_name
    price = _money(payload.currency, payload.price)

    if kind == PRICE_ALERT:
        subject = f"Price Alert: {name} is now {price}"
        heading = "Price Alert!"
        lines = [
            f"Current price: {price}",
            f"Your target: {_money(payload.currency, payload.target_price)}",
            f"Store: {payload.store_name}",
        ]
    else:
        subject = f"Back in Stock: {name}"
        heading = "Back in Stock"
        lines = [f"Price: {price}", f"Store: {payload.store_name}"]

    plain = f"{heading} {name}\n\n" + "\n".join(lines) + f"\n\nLink: {payload.product_url}\n"

    items = "".join(f"<li>{html.escape(line)}</li>" for line in lines)
    body = (
        "<html><body>"
        f"<h3>{html.escape(heading)} {html.escape(name)}</h3>"
        f"<ul>{items}</ul>"
        f'<p><a href="{html.escape(payload.product_url, quote=True)}">View product</a></p>'
        "</body></html>"
    )
    return subject, plain, body


def render_telegram(kind: str, payload: NotificationPayload) -> str:
    """HTML-mode Telegram message."""
    name = html.escape(payload.product_name)
    store = html.escape(payload.store_name)
    url = html.escape(payload.product_url, quote=True)
    price = _money(payload.currency, payload.price)

    if kind == PRICE_ALERT:
        return (
            "<b>Price Alert!</b>\n\n"
            f"<b>{name}</b>\n\n"
            f"Current price: <b>{price}</b>\n"
            f"Your target: {_money(payload.currency, payload.target_price)}\n"
            f"Store: {store}\n\n"
            f'<a href="{url}">View product</a>'
        )
    return (
        "<b>Back in Stock</b>\n\n"
        f"<b>{name}</b>\n\n"
        f"Price: <b>{price}</b>\n"
        f"Store: {store}\n\n"
        f'<a href="{url}">View product</a>'
    )


def render_push(kind: str, payload: NotificationPayload, token: str) -> Dict[str, object]:
    """JSON body posted to the push webhook."""
    title = "Price Alert" if kind == PRICE_ALERT else "Back in Stock"
    data = {key: str(value) if isinstance(value, Decimal) else value for key, value in asdict(payload).items()}
    return {
        "token": token,
        "kind": kind,
        "title": title,
        "body": f"{payload.product_name}: {_money(payload.currency, payload.price)} at {payload.store_name}",
        "data": data,
    }


# ----------------------------------------------------------------------
# Channels
# ----------------------------------------------------------------------

class EmailChannel:
    """SMTP delivery (STARTTLS on 587, implicit TLS otherwise)."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: Optional[bool] = None,
    ):
        self.host = settings.SMTP_HOST if host is None else host
        self.port = settings.SMTP_PORT if port is None else port
        self.username = settings.SMTP_USER if username is None else username
        self.password = settings.SMTP_PASSWORD if password is None else password
        self.sender = settings.SMTP_FROM if sender is None else sender
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    def build_message(self, address: str, kind: str, payload: NotificationPayload) -> EmailMessage:
        subject, plain, body = render_email(kind, payload)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = address
        message.set_content(plain)
        message.add_alternative(body, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_tls and self.port == 587:
            with smtplib.SMTP(self.host, self.port, timeout=20) as smtp:
                smtp.ehlo()
                smtp.starttls(context=context)
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        elif self.use_tls:
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=20) as smtp:
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=20) as smtp:
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)

    async def send(self, address: str, kind: str, payload: NotificationPayload) -> bool:
        message = self.build_message(address, kind, payload)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._deliver, message)
        return True


class TelegramChannel:
    """Telegram Bot API ``sendMessage`` in HTML parse mode."""

    def __init__(self, client: httpx.AsyncClient, bot_token: Optional[str] = None):
        self.client = client
        self.bot_token = settings.TELEGRAM_BOT_TOKEN if bot_token is None else bot_token

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    async def send(self, address: str, kind: str, payload: NotificationPayload) -> bool:
        response = await self.client.post(
            TELEGRAM_API_URL.format(token=self.bot_token),
            json={
                "chat_id": address,
                "text": render_telegram(kind, payload),
                "parse_mode": "HTML",
                "disable_web_page_preview": False,
            },
        )
        if response.status_code != 200:
            logger.warning("telegram_send_rejected", status=response.status_code, body=response.text[:200])
            return False
        return True


class PushChannel:
    """JSON POST to a push gateway webhook."""

    def __init__(self, client: httpx.AsyncClient, webhook_url: Optional[str] = None):
        self.client = client
        self.webhook_url = settings.PUSH_WEBHOOK_URL if webhook_url is None else webhook_url

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, address: str, kind: str, payload: NotificationPayload) -> bool:
        response = await self.client.post(self.webhook_url, json=render_push(kind, payload, address))
        if response.status_code >= 300:
            logger.warning("push_send_rejected", status=response.status_code, body=response.text[:200])
            return False
        return True


class NotificationDispatcher:
    """Routes a notification to its channel."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        email: Optional[EmailChannel] = None,
        telegram: Optional[TelegramChannel] = None,
        push: Optional[PushChannel] = None,
    ):
        """Initialize the dispatcher.

        Args:
            client: Shared HTTP client for Telegram and push
            email: Email channel (default: from SMTP settings)
            telegram: Telegram channel (default: from TELEGRAM_BOT_TOKEN)
            push: Push channel (default: from PUSH_WEBHOOK_URL)
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=20.0)
        self.channels = {
            EMAIL: email or EmailChannel(),
            TELEGRAM: telegram or TelegramChannel(self.client),
            PUSH: push or PushChannel(self.client),
        }
        self.logger = logger.bind(service="notification_dispatcher")

    def is_configured(self, channel: str) -> bool:
        handler = self.channels.get(channel)
        return handler is not None and handler.configured

    async def send(self, target: NotificationTarget, template_kind: str, payload: NotificationPayload) -> bool:
        """Deliver one notification.

        Args:
            target: Channel and address
            template_kind: ``price_alert`` or ``back_in_stock``
            payload: Values rendered into the template

        Returns:
            True when the channel accepted the message
        """
        handler = self.channels.get(target.channel)
        if handler is None or template_kind not in TEMPLATE_KINDS:
            self.logger.warning("notification_unsupported", channel=target.channel, kind=template_kind)
            return False
        if not target.address:
            self.logger.info("notification_no_address", channel=target.channel, kind=template_kind)
            return False
        if not handler.configured:
            self.logger.info("notification_channel_unconfigured", channel=target.channel, kind=template_kind)
            return False

        try:
            sent = await handler.send(target.address, template_kind, payload)
        except (httpx.HTTPError, smtplib.SMTPException, OSError) as e:
            self.logger.warning(
                "notification_failed",
                channel=target.channel,
                kind=template_kind,
                error=str(e),
            )
            return False

        if sent:
            self.logger.info("notification_sent", channel=target.channel, kind=template_kind)
        return sent

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
