"""Clientes das APIs externas (ASAAS, Google Calendar, OpenAI, webhooks)."""
