import pytest

from crud.utils import (
    limpar_digitos, validate_phone_number, normalizar_telefone_br,
    telefone_para_jid, jid_para_telefone, validate_cep, formatar_cep,
)
from crud.validators import (
    validar_cpf, validar_cpf_mensagem, validar_cpf_opcional, formatar_cpf,
    validar_responsavel_asaas, montar_mensagem_erro_asaas,
)

CPF_VALIDO = "52998224725"


def test_limpar_digitos():
    assert limpar_digitos("529.982.247-25") == CPF_VALIDO
    assert limpar_digitos(None) == ''


@pytest.mark.parametrize("cpf", [CPF_VALIDO, "529.982.247-25", "111.444.777-35"])
def test_cpf_valido(cpf):
    assert validar_cpf(cpf)


@pytest.mark.parametrize("cpf", ["52998224724", "11111111111", "123", ""])
def test_cpf_invalido(cpf):
    assert not validar_cpf(cpf)


def test_mensagens_de_cpf():
    assert validar_cpf_mensagem("") == (False, 'CPF é obrigatório')
    assert validar_cpf_mensagem("1234") == (False, 'CPF deve conter 11 dígitos')
    assert validar_cpf_mensagem("000.000.000-00") == (False, 'Este CPF não pode ser utilizado')
    assert validar_cpf_mensagem("52998224724") == (False, 'CPF inválido. Verifique os dígitos informados')
    assert validar_cpf_mensagem(CPF_VALIDO) == (True, None)


def test_cpf_opcional_aceita_vazio():
    assert validar_cpf_opcional(None) == (True, None)
    assert validar_cpf_opcional("   ") == (True, None)
    assert validar_cpf_opcional("52998224724")[0] is False


def test_formatar_cpf():
    assert formatar_cpf(CPF_VALIDO) == "529.982.247-25"
    assert formatar_cpf("123") == "123"


def test_telefone():
    assert validate_phone_number("(11) 99999-8888")
    assert validate_phone_number("1133334444")
    assert validate_phone_number("5511999998888")
    assert not validate_phone_number("99998888")


def test_normalizar_telefone_e_jid():
    assert normalizar_telefone_br("(11) 99999-8888") == "5511999998888"
    assert normalizar_telefone_br("5511999998888") == "5511999998888"
    assert normalizar_telefone_br("") == ''
    assert telefone_para_jid("55 11 99999-8888") == "5511999998888@s.whatsapp.net"
    assert jid_para_telefone("5511999998888@s.whatsapp.net") == "5511999998888"


def test_cep():
    assert validate_cep("01310-100")
    assert not validate_cep("0131010")
    assert formatar_cep("01310100") == "01310-100"
    assert formatar_cep("123") == "123"


def _responsavel(**extra):
    dados = {
        'nome': 'Maria Souza',
        'cpf_cnpj': CPF_VALIDO,
        'email': 'maria@gmail.com',
        'telefone': '5511999998888',
        'cep': '01310100',
        'numero_endereco': '100',
    }
    dados.update(extra)
    return dados


def test_responsavel_completo_e_valido():
    validacao = validar_responsavel_asaas(_responsavel())
    assert validacao == {'isValid': True, 'missingFields': [], 'warnings': []}
    assert montar_mensagem_erro_asaas(validacao) == ''


def test_responsavel_com_campos_faltando():
    validacao = validar_responsavel_asaas(_responsavel(email='', cep=None, numero_endereco='  '))
    assert not validacao['isValid']
    assert validacao['missingFields'] == ['Email', 'CEP', 'Número da residência']


def test_avisos_de_email():
    validacao = validar_responsavel_asaas(_responsavel(email='joão@gmail.con'))
    assert not validacao['isValid']
    assert 'Email contém caracteres especiais não permitidos' in validacao['warnings']
    assert 'Email com domínio suspeito - verifique se está correto' in validacao['warnings']


def test_mensagem_de_erro_lista_campos_e_avisos():
    validacao = validar_responsavel_asaas(_responsavel(telefone=None, email='maria@gmail.con'))
    mensagem = montar_mensagem_erro_asaas(validacao, 'Maria Souza')
    assert mensagem.startswith('Não é possível gerar cobrança para Maria Souza.')
    assert '• Telefone' in mensagem
    assert '• Email com domínio suspeito - verifique se está correto' in mensagem
