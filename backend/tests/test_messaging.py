import json

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from restaum import db
from restaum.models import LiveParticipant
from restaum.services import messaging
from restaum.services.games.registration import join_game
from restaum.services.messaging import WhatsAppClient, normalize_number


@pytest.mark.parametrize('raw, expected', [
    ('+55 (31) 98888-0001', '5531988880001'),
    ('whatsapp:+5531988880001', '5531988880001'),
    ('123', None),
    ('', None),
    (None, None),
])
def test_normalize_number(raw, expected):
    assert normalize_number(raw) == expected


def _client(flask_app, handler, enabled=True):
    return WhatsAppClient(
        url='https://messages.test/v1/messages',
        api_key='key',
        api_secret='secret',
        from_number='5531999990000',
        enabled=enabled,
        transport=httpx.MockTransport(handler),
        logger=flask_app.logger,
    )


def test_send_text_posts_vonage_payload(flask_app):
    seen = {}

    def handler(request):
        seen['url'] = str(request.url)
        seen['auth'] = request.headers.get('authorization')
        seen['body'] = json.loads(request.content)
        return httpx.Response(202, json={'message_uuid': 'abc'})

    assert _client(flask_app, handler).send_text('+55 31 98888-0001', 'Olá') is True
    assert seen['url'] == 'https://messages.test/v1/messages'
    assert seen['auth'].startswith('Basic ')
    assert seen['body'] == {
        'message_type': 'text',
        'channel': 'whatsapp',
        'to': '5531988880001',
        'from': '5531999990000',
        'text': 'Olá',
    }


def test_send_text_reports_http_errors(flask_app):
    assert _client(flask_app, lambda request: httpx.Response(401, text='bad credentials')).send_text('5531988880001', 'x') is False


def test_send_text_reports_transport_errors(flask_app):
    def handler(request):
        raise httpx.ConnectError('unreachable', request=request)

    assert _client(flask_app, handler).send_text('5531988880001', 'x') is False


def test_simulation_mode_does_not_call_out(flask_app):
    def handler(request):
        raise AssertionError('no HTTP call expected')

    assert _client(flask_app, handler, enabled=False).send_text('5531988880001', 'x') is True


def test_invalid_recipient_is_skipped(flask_app):
    def handler(request):
        raise AssertionError('no HTTP call expected')

    assert _client(flask_app, handler).send_text(None, 'x') is False


def test_elimination_notice_marks_participant(flask_app, users, make_game):
    game = make_game()
    participant = join_game(game.id, 'alice', 5)
    LiveParticipant.query.filter_by(id=participant.id).update({'status': 'eliminated'})
    db.session.commit()

    messaging.notify_elimination(flask_app, participant.id)
    assert db.session.get(LiveParticipant, participant.id).notification_sent is True


def test_elimination_notice_not_marked_without_contact(flask_app, users, make_game):
    game = make_game()
    participant = join_game(game.id, 'dan', 5)  # no WhatsApp number on file
    messaging.notify_elimination(flask_app, participant.id)
    assert db.session.get(LiveParticipant, participant.id).notification_sent is False


def test_failed_notice_is_logged_and_rolled_back(flask_app, users, make_game, monkeypatch, caplog):
    game = make_game()
    participant = join_game(game.id, 'alice', 5)
    real_commit = db.session.commit

    def locked_commit():
        raise OperationalError('UPDATE live_participant', {}, Exception('database is locked'))

    monkeypatch.setattr(db.session, 'commit', locked_commit)
    messaging.notify_elimination(flask_app, participant.id)
    monkeypatch.setattr(db.session, 'commit', real_commit)

    assert '[whatsapp-failed]' in caplog.text
    assert db.session.get(LiveParticipant, participant.id).notification_sent is False
