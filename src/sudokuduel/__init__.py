"""Sudoku Duel package exposing the puzzle engine, session state and the web application."""

from .coordinator import MatchCoordinator
from .puzzle import generate_puzzle
from .solo import SoloSession
from .sync import ClientSync
from .ui import app, create_app

__all__ = [
    "ClientSync",
    "MatchCoordinator",
    "SoloSession",
    "app",
    "create_app",
    "generate_puzzle",
]
