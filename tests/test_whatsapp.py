import json
from datetime import timedelta

import httpx
import pytest

from crud import whatsapp
from crud.utils import agora_utc
from services import webhooks as webhook_service

JID = '5511999998888@s.whatsapp.net'


@pytest.fixture
def webhook_whatsapp(monkeypatch, mock_http):
    recebidos = []

    def handler(request):
        recebidos.append(json.loads(request.content))
        return httpx.Response(200)

    monkeypatch.setattr(webhook_service, "WHATSAPP_WEBHOOK_URL", "https://n8n.test/whatsapp")
    monkeypatch.setattr(webhook_service, "get_http_client", lambda: mock_http(handler))
    monkeypatch.setattr(whatsapp, "gerar_codigo", lambda: '123456')
    return recebidos


def _acao(client, action, code=None):
    return client.post('/public/validate-whatsapp-code', json={'action': action, 'whatsappJid': JID, 'code': code})


def tentativa_enviada(db):
    return list(db.todos('whatsapp_validation_attempts').values())[0]


def test_gerar_codigo_tem_seis_digitos():
    codigo = whatsapp.gerar_codigo()
    assert len(codigo) == 6 and codigo.isdigit()


def test_enviar_codigo_guarda_hash_e_chama_webhook(client_publico, db, webhook_whatsapp):
    resposta = _acao(client_publico, 'send_code')

    assert resposta.status_code == 200
    assert resposta.json()['action'] == 'code_sent'

    tentativa = list(db.todos('whatsapp_validation_attempts').values())[0]
    assert tentativa['phone_number'] == '5511999998888'
    assert tentativa['code_hash'] == whatsapp.hash_codigo('123456')
    assert '123456' not in json.dumps(tentativa, default=str)

    assert webhook_whatsapp[0]['tipo'] == 'validar_whatsapp'
    assert webhook_whatsapp[0]['data']['codigo'] == '123456'
    assert webhook_whatsapp[0]['data']['whatsapp'] == '5511999998888'
    assert tentativa_enviada(db)['webhook_sent'] is True


def test_falha_no_webhook_enfileira(client_publico, db, monkeypatch, mock_http):
    monkeypatch.setattr(webhook_service, "WHATSAPP_WEBHOOK_URL", "https://n8n.test/whatsapp")
    monkeypatch.setattr(webhook_service, "get_http_client", lambda: mock_http(lambda r: httpx.Response(503)))

    assert _acao(client_publico, 'send_code').json()['success'] is True

    fila = list(db.todos('webhook_queue').values())
    assert [item['evento'] for item in fila] == ['validar_whatsapp']
    tentativa = list(db.todos('whatsapp_validation_attempts').values())[0]
    assert tentativa['webhook_sent'] is False


def test_codigo_correto_valida(client_publico, db, webhook_whatsapp):
    _acao(client_publico, 'send_code')

    resposta = _acao(client_publico, 'validate_code', '123456')

    assert resposta.json() == {'success': True, 'action': 'code_validated'}
    tentativa = list(db.todos('whatsapp_validation_attempts').values())[0]
    assert tentativa['validated'] is True
    assert _acao(client_publico, 'validate_code', '123456').json()['success'] is False


def test_codigo_errado_conta_tentativas_e_bloqueia(client_publico, webhook_whatsapp):
    _acao(client_publico, 'send_code')

    primeira = _acao(client_publico, 'validate_code', '000000').json()
    assert primeira == {
        'success': False,
        'error': 'Código incorreto. 2 tentativas restantes.',
        'attemptsRemaining': 2,
        'blocked': False,
    }
    _acao(client_publico, 'validate_code', '000000')
    terceira = _acao(client_publico, 'validate_code', '000000').json()
    assert terceira['blocked'] is True

    bloqueado = _acao(client_publico, 'validate_code', '123456').json()
    assert bloqueado['action'] == 'blocked'


def test_codigo_expirado(client_publico, db):
    db.inserir('whatsapp_validation_attempts', 'v1', {
        'phone_number': '5511999998888',
        'code_hash': whatsapp.hash_codigo('123456'),
        'expires_at': agora_utc() - timedelta(minutes=1),
        'attempts': 0,
        'validated': False,
    })

    resposta = _acao(client_publico, 'validate_code', '123456')

    assert resposta.status_code == 200
    assert resposta.json() == {'success': False, 'error': 'Código expirado ou não encontrado. Solicite um novo código.'}


def test_acao_invalida(client_publico):
    resposta = _acao(client_publico, 'reset')
    assert resposta.status_code == 400
    assert resposta.json() == {'success': False, 'error': 'Ação inválida'}


@pytest.mark.parametrize("code", [None, '', '   '])
def test_validar_sem_codigo_nao_conta_tentativa(client_publico, db, webhook_whatsapp, code):
    _acao(client_publico, 'send_code')

    for _ in range(3):
        resposta = _acao(client_publico, 'validate_code', code)
        assert resposta.status_code == 400
        assert resposta.json() == {'success': False, 'error': 'Ação inválida'}

    assert tentativa_enviada(db)['attempts'] == 0
    assert _acao(client_publico, 'validate_code', '123456').json() == {'success': True, 'action': 'code_validated'}
