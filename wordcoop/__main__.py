"""
Main entry point for the wordcoop package.
Run the signaling relay with: python -m wordcoop
"""
from wordcoop.relay.server import run

if __name__ == "__main__":
    run()
