"""Game constants and utilities"""

from typing import Dict, List

# Phases
PHASE_LOBBY = 'LOBBY'
PHASE_SWAP = 'SWAP'
PHASE_TRICK = 'TRICK'
PHASE_HAND_END = 'HAND_END'
PHASE_GAME_OVER = 'GAME_OVER'

# Modes
MODE_HOTSEAT = 'HOTSEAT'
MODE_MULTI = 'MULTI'

SUITS = ['C', 'D', 'H', 'S']
RANKS = list(range(2, 15))  # 11=J, 12=Q, 13=K, 14=A
SUIT_ICON: Dict[str, str] = {'C': '♣', 'D': '♦', 'H': '♥', 'S': '♠'}
RANK_LABEL: Dict[int, str] = {11: 'J', 12: 'Q', 13: 'K', 14: 'A'}
RED_SUITS = ('D', 'H')

CARDS_PER_DECK = 52
HAND_SIZE = 5
TRICKS_PER_HAND = 5
MAX_SWAP = 3
MAX_PLAYERS = 6
MIN_PLAYERS = 2

# Fold penalties
FOLD_PENALTY_THRESHOLD = 'threshold'
FOLD_PENALTY_INCREASE = 'increase'

# Dealer rules
DEALER_RULE_ROTATE = 'rotate'
DEALER_RULE_LAST_TRICK_WINNER = 'last_trick_winner'

# Hand end reasons
HAND_END_COMPLETE = 'complete'
HAND_END_ALL_FOLDED = 'all_folded'

# Room log entry kinds
LOG_PLAY = 'play'
LOG_FOLD = 'fold'
LOG_HAND_END = 'hand_end'
LOG_CHAT = 'chat'
LOG_CHAT_VOICE = 'chat_voice'
LOG_CHAT_LIKE = 'chat_like'

SYSTEM_NAME = 'System'

# Rooms
MAX_ROOM_NAME_LENGTH = 32
MAX_NICKNAME_LENGTH = 18
ROOM_CODE_LENGTH = 6
MAX_ROOM_CODE_LENGTH = 8
ROOM_CODE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
DEFAULT_ROOM_NAME = "Player's Lobby"
DEFAULT_PLAYER_NAME = 'Player'

# Document store collections
ROOM_COLLECTION = 'rooms'
USER_COLLECTION = 'users'
HAND_COLLECTION = 'hands'
LOG_COLLECTION = 'roomLog'
META_APP_PATH = 'meta/app'

# Error codes
ERROR_NOT_YOUR_TURN = 'NOT_YOUR_TURN'
ERROR_WRONG_PHASE = 'WRONG_PHASE'
ERROR_INVALID_SELECTION = 'INVALID_SELECTION'
ERROR_SUIT_VIOLATION = 'SUIT_VIOLATION'
ERROR_DEALER_CANNOT_FOLD = 'DEALER_CANNOT_FOLD'
ERROR_ALREADY_SWAPPED = 'ALREADY_SWAPPED'
ERROR_NOT_DEALER = 'NOT_DEALER'
ERROR_NOT_HOST = 'NOT_HOST'
ERROR_NOT_ENOUGH_PLAYERS = 'NOT_ENOUGH_PLAYERS'
ERROR_ROOM_FULL = 'ROOM_FULL'
ERROR_ROOM_NOT_FOUND = 'ROOM_NOT_FOUND'
ERROR_NOT_SIGNED_IN = 'NOT_SIGNED_IN'
ERROR_PLAYER_NOT_FOUND = 'PLAYER_NOT_FOUND'
ERROR_CARD_NOT_IN_HAND = 'CARD_NOT_IN_HAND'
ERROR_STALE_STATE = 'STALE_STATE'
ERROR_CONNECTIVITY = 'CONNECTIVITY'
ERROR_GAME_OVER = 'GAME_OVER'
ERROR_INTERNAL = 'INTERNAL_ERROR'

ERROR_CODES: List[str] = [
    ERROR_NOT_YOUR_TURN, ERROR_WRONG_PHASE, ERROR_INVALID_SELECTION,
    ERROR_SUIT_VIOLATION, ERROR_DEALER_CANNOT_FOLD, ERROR_ALREADY_SWAPPED,
    ERROR_NOT_DEALER, ERROR_NOT_HOST, ERROR_NOT_ENOUGH_PLAYERS,
    ERROR_ROOM_FULL, ERROR_ROOM_NOT_FOUND, ERROR_NOT_SIGNED_IN,
    ERROR_PLAYER_NOT_FOUND, ERROR_CARD_NOT_IN_HAND, ERROR_STALE_STATE,
    ERROR_CONNECTIVITY, ERROR_GAME_OVER, ERROR_INTERNAL,
]
