"""Clio Agent Bridge.

This package lets AI agents ask for synthesized reports about a law
firm's Clio matters (intelligence briefs, conflict checks, billing
audits) without ever talking to the Clio API themselves.
"""
