"""Shared plumbing for Syrinx services: config, logging, errors, health, middleware."""
