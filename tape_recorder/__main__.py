"""Allow running as `python -m tape_recorder`."""

from tape_recorder.cli import main_entry

if __name__ == "__main__":
    main_entry()
