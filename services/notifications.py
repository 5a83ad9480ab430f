"""User notifications with pluggable delivery channels.

Every channel is best-effort: a failing channel is logged and skipped and
never propagates into the payment flow that triggered it.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.notification import Notification
from models.user import User
from utils.emailer import email_configured, send_email

logger = logging.getLogger(__name__)


@dataclass
class Message:
    user_id: int
    title: str
    message: str
    type: str
    link: Optional[str] = None
    data: dict = field(default_factory=dict)
    # shorter text for push banners
    push_body: Optional[str] = None


class InAppChannel:
    name = "in_app"

    def send(self, msg: Message) -> None:
        db.session.add(Notification(
            user_id=msg.user_id,
            title=msg.title,
            message=msg.message,
            type=msg.type,
            link=msg.link,
        ))
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


class EmailChannel:
    name = "email"

    def send(self, msg: Message) -> None:
        if not email_configured():
            return
        user = db.session.get(User, msg.user_id)
        if not user or not user.email:
            return
        ok, err = send_email(user.email, msg.title, msg.message)
        if not ok:
            raise RuntimeError(err or "email send failed")


class PushChannel:
    name = "push"

    def send(self, msg: Message) -> None:
        url = current_app.config.get("PUSH_NOTIFY_URL")
        if not url:
            return
        token = current_app.config.get("PUSH_NOTIFY_TOKEN")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        response = httpx.post(
            url,
            json={
                "user_id": msg.user_id,
                "title": msg.title,
                "body": msg.push_body or msg.message,
                "notification_type": msg.type,
                "data": {"type": msg.type, "link": msg.link, **msg.data},
            },
            headers=headers,
            timeout=10.0,
        )
        response.raise_for_status()


class Notifier:
    def __init__(self, channels=None):
        self.channels = list(channels) if channels is not None else [InAppChannel(), PushChannel(), EmailChannel()]

    def notify(self, user_id: int, title: str, message: str, type: str, link: str = None,
               data: dict = None, push_body: str = None) -> dict:
        """Fan out one message; returns ``{channel_name: delivered_bool}``."""
        msg = Message(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            link=link,
            data=data or {},
            push_body=push_body,
        )
        results = {}
        for channel in self.channels:
            try:
                channel.send(msg)
                results[channel.name] = True
            except Exception:
                logger.exception("Notification channel %s failed for user %s", channel.name, user_id)
                results[channel.name] = False
        return results


def init_notifier(app):
    app.extensions["notifier"] = Notifier()


def get_notifier() -> Notifier:
    return current_app.extensions["notifier"]


def notify(user_id, title, message, type, link=None, data=None, push_body=None) -> dict:
    return get_notifier().notify(user_id, title, message, type, link=link, data=data, push_body=push_body)
