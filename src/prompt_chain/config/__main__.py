"""``python -m prompt_chain.config``: print the resolved configuration."""

import sys

from .introspection import main

if __name__ == "__main__":
    sys.exit(main())
