"""Entry point for running Scene-Forge as a module.

Allows running with: python -m scene_forge
"""

from .cli import main

if __name__ == "__main__":
    main()
