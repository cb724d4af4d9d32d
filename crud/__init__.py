# crud/__init__.py
"""
Módulo CRUD organizado por domínios da clínica.
"""

# Utilitários
from crud.utils import (
    encrypt_sensitive_fields,
    decrypt_sensitive_fields,
    validate_phone_number,
    normalizar_telefone_br,
    validate_cep,
    formatar_cep,
    add_timestamps,
)

# Validações
from crud.validators import (
    validar_cpf,
    validar_cpf_mensagem,
    validar_cpf_opcional,
    formatar_cpf,
    validar_responsavel_asaas,
    montar_mensagem_erro_asaas,
)

# Usuários e Autenticação
from crud.usuarios import (
    buscar_usuario_por_firebase_uid,
    sincronizar_usuario,
    atualizar_role_usuario,
    listar_profissionais,
    listar_tipos_servico,
)

# Agendamentos
from crud.agendamentos import (
    criar_agendamento,
    buscar_agendamento_por_id,
    atualizar_agendamento,
    cancelar_agendamento,
    excluir_agendamento,
    listar_agendamentos,
)

# Faturamento
from crud.faturas import (
    buscar_api_key_empresa,
    listar_consultas_elegiveis,
    criar_fatura,
    processar_pagamento,
    editar_fatura,
    excluir_fatura,
    emitir_nfe,
    registrar_recebimento_manual,
    listar_faturas,
    calcular_metricas_faturas,
)
from crud.cobranca import gerar_descricao_cobranca

# Comissões
from crud.comissoes import (
    criar_comissao,
    buscar_comissao_por_id,
    atualizar_comissao,
    deletar_comissao,
    alterar_status_comissao,
    listar_comissoes,
    calcular_valor_comissao,
)

# Produtos
from crud.produtos import (
    buscar_produtos_similares,
    sugerir_produto,
    criar_produto_rapido,
    gerar_codigo_produto,
)

# Notificações
from crud.notifications import (
    adicionar_fcm_token,
    remover_fcm_token,
    enfileirar_notificacao_push,
    processar_fila_push,
    listar_logs_push,
)

# Webhooks
from crud.webhooks import (
    enfileirar_webhook,
    enviar_ou_enfileirar,
    processar_fila_webhooks,
    reenviar_webhook,
    listar_fila_webhooks,
    listar_webhooks,
    criar_webhook,
    atualizar_webhook,
    deletar_webhook,
    testar_webhook,
)

# Cadastro público e WhatsApp
from crud.whatsapp import enviar_codigo, validar_codigo
from crud.registro_publico import (
    extrair_ip,
    registrar_evento_cadastro,
    listar_eventos_cadastro,
    finalizar_cadastro_paciente,
    adicionar_responsavel_financeiro,
)

# Google Calendar
from crud.google_calendar import (
    conectar_google_calendar,
    desconectar_google_calendar,
    sincronizar_agendamento,
)

# Inteligência artificial
from crud.ai import (
    LimiteRequisicoesExcedido,
    melhorar_texto,
    compilar_historico_paciente,
    transcrever_audio,
)

__all__ = [
    # Utilitários
    'encrypt_sensitive_fields',
    'decrypt_sensitive_fields',
    'validate_phone_number',
    'normalizar_telefone_br',
    'validate_cep',
    'formatar_cep',
    'add_timestamps',

    # Validações
    'validar_cpf',
    'validar_cpf_mensagem',
    'validar_cpf_opcional',
    'formatar_cpf',
    'validar_responsavel_asaas',
    'montar_mensagem_erro_asaas',

    # Usuários
    'buscar_usuario_por_firebase_uid',
    'sincronizar_usuario',
    'atualizar_role_usuario',
    'listar_profissionais',
    'listar_tipos_servico',

    # Agendamentos
    'criar_agendamento',
    'buscar_agendamento_por_id',
    'atualizar_agendamento',
    'cancelar_agendamento',
    'excluir_agendamento',
    'listar_agendamentos',

    # Faturamento
    'buscar_api_key_empresa',
    'listar_consultas_elegiveis',
    'criar_fatura',
    'processar_pagamento',
    'editar_fatura',
    'excluir_fatura',
    'emitir_nfe',
    'registrar_recebimento_manual',
    'listar_faturas',
    'calcular_metricas_faturas',
    'gerar_descricao_cobranca',

    # Comissões
    'criar_comissao',
    'buscar_comissao_por_id',
    'atualizar_comissao',
    'deletar_comissao',
    'alterar_status_comissao',
    'listar_comissoes',
    'calcular_valor_comissao',

    # Produtos
    'buscar_produtos_similares',
    'sugerir_produto',
    'criar_produto_rapido',
    'gerar_codigo_produto',

    # Notificações
    'adicionar_fcm_token',
    'remover_fcm_token',
    'enfileirar_notificacao_push',
    'processar_fila_push',
    'listar_logs_push',

    # Webhooks
    'enfileirar_webhook',
    'enviar_ou_enfileirar',
    'processar_fila_webhooks',
    'reenviar_webhook',
    'listar_fila_webhooks',
    'listar_webhooks',
    'criar_webhook',
    'atualizar_webhook',
    'deletar_webhook',
    'testar_webhook',

    # Cadastro público e WhatsApp
    'enviar_codigo',
    'validar_codigo',
    'extrair_ip',
    'registrar_evento_cadastro',
    'listar_eventos_cadastro',
    'finalizar_cadastro_paciente',
    'adicionar_responsavel_financeiro',

    # Google Calendar
    'conectar_google_calendar',
    'desconectar_google_calendar',
    'sincronizar_agendamento',

    # Inteligência artificial
    'LimiteRequisicoesExcedido',
    'melhorar_texto',
    'compilar_historico_paciente',
    'transcrever_audio',
]
