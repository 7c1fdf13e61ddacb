"""Realtime delivery core: sessions, rooms, typing and the socket namespace."""
