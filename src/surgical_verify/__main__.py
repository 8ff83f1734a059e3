# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Entry point for running the CLI as a module: python -m surgical_verify"""

from .cli import main

if __name__ == "__main__":
    main()
