"""chatline CLI bootstrap."""

from chatline.cli import app

if __name__ == "__main__":
    app()
