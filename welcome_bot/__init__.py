"""
T3N Voice Bot

Discord bot that sits in a single voice channel and plays a short welcome
clip whenever a member joins it. A small HTTP status endpoint reports the
bot's health to the hosting platform.

The voice transport, gateway session and opus encoding are handled by
discord.py; this package owns reconnection, playback gating and the
startup credential check.
"""
