"""
CLI entry point, when used as a module: `python -m kubewire`.
"""
from kubewire import cli

if __name__ == '__main__':
    cli.main()
