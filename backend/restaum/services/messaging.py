"""WhatsApp notifications for live game results.

Delivery goes through the Vonage Messages API. Every send is
fire-and-forget: failures are logged and reported as ``False``, never
raised, so game progression does not depend on the messaging provider.
"""
import re
from typing import Optional

import httpx
from flask import current_app

from restaum import db, socketio
from restaum.services.context import app_context_for
from restaum.models import LiveGame, LiveParticipant, User


def normalize_number(raw: Optional[str]) -> Optional[str]:
    """Strip a contact address down to digits (``whatsapp:+55 31 ...`` -> ``5531...``)."""
    if not raw:
        return None
    digits = re.sub(r'\D', '', raw.replace('whatsapp:', ''))
    if not 10 <= len(digits) <= 15:
        return None
    return digits


class WhatsAppClient:
    def __init__(self, url, api_key, api_secret, from_number, enabled=False, timeout=10.0, transport=None, logger=None):
        self.url = url
        self.api_key = api_key
        self.api_secret = api_secret
        self.from_number = from_number
        self.enabled = enabled
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or current_app.logger

    @classmethod
    def from_config(cls, config, **kwargs):
        return cls(
            url=config.get('VONAGE_MESSAGES_URL'),
            api_key=config.get('VONAGE_API_KEY', ''),
            api_secret=config.get('VONAGE_API_SECRET', ''),
            from_number=config.get('VONAGE_WHATSAPP_FROM', ''),
            enabled=bool(config.get('WHATSAPP_ENABLED')),
            timeout=float(config.get('WHATSAPP_TIMEOUT_SEC', 10)),
            **kwargs,
        )

    def send_text(self, to: Optional[str], text: str) -> bool:
        number = normalize_number(to)
        if not number:
            self.logger.warning(f"[whatsapp-skip] invalid recipient={to!r}")
            return False
        if not self.enabled:
            self.logger.info(f"[whatsapp-simulated] to={number} chars={len(text)}")
            return True

        payload = {
            'message_type': 'text',
            'channel': 'whatsapp',
            'to': number,
            'from': self.from_number,
            'text': text,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport, auth=(self.api_key, self.api_secret)) as client:
                response = client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self.logger.warning(
                f"[whatsapp-failed] to={number} status={exc.response.status_code} body={exc.response.text[:200]}"
            )
            return False
        except httpx.HTTPError as exc:
            self.logger.warning(f"[whatsapp-failed] to={number} error={exc}")
            return False

        self.logger.info(f"[whatsapp-sent] to={number}")
        return True


def winner_message(game: LiveGame) -> str:
    return (
        "🏆 *VOCÊ VENCEU O RESTA UM!* 🏆\n\n"
        f"🎮 *Jogo:* {game.title}\n"
        f"🔢 *Número vencedor:* {game.winner_number}\n\n"
        "🎉 Parabéns! Entraremos em contato para combinar a entrega do prêmio."
    )


def elimination_message(game: LiveGame, participant: LiveParticipant) -> str:
    eliminated_at = participant.eliminated_at.strftime('%d/%m/%Y %H:%M:%S') if participant.eliminated_at else '-'
    return (
        "💀 *ELIMINAÇÃO NO JOGO RESTA UM* 💀\n\n"
        "❌ *Você foi eliminado!*\n\n"
        f"🎮 *Jogo:* {game.title}\n"
        f"🔢 *Seu número:* {participant.lucky_number}\n"
        f"⏰ *Eliminado em:* {eliminated_at} (UTC)\n\n"
        "😔 Infelizmente sua sorte não foi desta vez, mas continue participando dos próximos jogos!"
    )


def _send_winner_message(app, game_id: str) -> None:
    with app_context_for(app):
        game = db.session.get(LiveGame, game_id)
        if not game or not game.winner_user_id:
            return
        user = db.session.get(User, game.winner_user_id)
        if not user:
            return
        WhatsAppClient.from_config(app.config, logger=app.logger).send_text(user.whatsapp, winner_message(game))


def _send_elimination_message(app, participant_id: str) -> None:
    with app_context_for(app):
        participant = db.session.get(LiveParticipant, participant_id)
        if not participant or participant.notification_sent:
            return
        user = db.session.get(User, participant.user_id)
        if not user:
            return
        client = WhatsAppClient.from_config(app.config, logger=app.logger)
        if client.send_text(user.whatsapp, elimination_message(participant.game, participant)):
            participant.notification_sent = True
            db.session.add(participant)
            db.session.commit()


def _run_guarded(app, fn, *args) -> None:
    # Notification failures never reach the game flow that triggered them.
    with app_context_for(app):
        try:
            fn(app, *args)
        except Exception:
            db.session.rollback()
            app.logger.exception(f"[whatsapp-failed] task={fn.__name__} args={args}")


def _dispatch(app, fn, *args) -> None:
    try:
        if app.config.get('TESTING'):
            _run_guarded(app, fn, *args)
        else:
            socketio.start_background_task(_run_guarded, app, fn, *args)
    except Exception as exc:
        app.logger.warning(f"[whatsapp-dispatch-failed] task={fn.__name__} error={exc}")


def notify_winner(app, game_id: str) -> None:
    _dispatch(app, _send_winner_message, game_id)


def notify_elimination(app, participant_id: str) -> None:
    _dispatch(app, _send_elimination_message, participant_id)
