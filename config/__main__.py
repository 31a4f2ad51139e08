"""Command line interface for testing configuration loading"""
from . import settings_conf, DEFAULTS
from pathlib import Path

SECRET_KEYS = {'jwt_secret', 'db_url'}

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        shown = '********' if key in SECRET_KEYS and value else value
        print(f"{key}: {shown}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("[DEFAULT]\n")
        f.write("# Marketplace service settings, values shown are the defaults\n")
        for key, value in DEFAULTS.items():
            f.write(f"{key} = {value}\n")

if __name__ == "__main__":
    main()
