"""Command line interface for checking configuration loading"""
from pathlib import Path

from . import DEFAULTS, settings_conf


def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        print(f"{key}: {value}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("[DEFAULT]\n")
        f.write("# Storage backend: postgres or memory\n")
        for key, value in DEFAULTS.items():
            f.write(f"{key} = {value}\n")


if __name__ == "__main__":
    main()
