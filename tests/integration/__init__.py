# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for surgical verification.

This package contains end-to-end tests that run the scanner, graph builder,
scope policy and cache together against on-disk monorepos.
"""
