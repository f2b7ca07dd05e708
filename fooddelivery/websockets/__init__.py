"""Websocket gateways that push order events to customers, partners and agents."""
