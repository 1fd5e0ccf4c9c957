"""Run the Aegis interactive CLI: ``python main.py``."""

from aegisAgent.main import main

if __name__ == "__main__":
    main()
