# mini_arch/__main__.py
from mini_arch.cli import app


def main():
    """
    Main application
    """
    app(prog_name="mini-arch")


if __name__ == "__main__":
    main()
