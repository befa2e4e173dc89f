"""HalfKAv2_hm input features: own king position combined with every piece."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator


class Color(IntEnum):
    WHITE = 0
    BLACK = 1

    def __invert__(self) -> "Color":
        return Color(self ^ 1)


class PieceType(IntEnum):
    NO_PIECE_TYPE = 0
    PAWN = 1
    KNIGHT = 2
    BISHOP = 3
    ROOK = 4
    QUEEN = 5
    KING = 6


COLOR_NB = 2
SQUARE_NB = 64
PIECE_NB = 16
PIECE_TYPE_NB = 8

SQ_A1, SQ_H1, SQ_A8, SQ_H8 = 0, 7, 56, 63
SQ_NONE = 64

NO_PIECE = 0
W_PAWN, W_KNIGHT, W_BISHOP, W_ROOK, W_QUEEN, W_KING = range(1, 7)
B_PAWN, B_KNIGHT, B_BISHOP, B_ROOK, B_QUEEN, B_KING = range(9, 15)
_VALID_PIECES = frozenset(range(1, 7)) | frozenset(range(9, 15))

NAME = "HalfKAv2_hm(Friend)"
HASH_VALUE = 0x7F234CB8

# Unique offset for each piece type seen from one side ("W" is us, "B" is them)
PS_W_PAWN, PS_B_PAWN = 0, 1 * SQUARE_NB
PS_W_KNIGHT, PS_B_KNIGHT = 2 * SQUARE_NB, 3 * SQUARE_NB
PS_W_BISHOP, PS_B_BISHOP = 4 * SQUARE_NB, 5 * SQUARE_NB
PS_W_ROOK, PS_B_ROOK = 6 * SQUARE_NB, 7 * SQUARE_NB
PS_W_QUEEN, PS_B_QUEEN = 8 * SQUARE_NB, 9 * SQUARE_NB
PS_KING = 10 * SQUARE_NB
PS_NB = 11 * SQUARE_NB
PS_NONE = 0

DIMENSIONS = SQUARE_NB * PS_NB // 2
MAX_ACTIVE_DIMENSIONS = 32

_OURS = (PS_NONE, PS_W_PAWN, PS_W_KNIGHT, PS_W_BISHOP, PS_W_ROOK, PS_W_QUEEN, PS_KING, PS_NONE)
_THEIRS = (PS_NONE, PS_B_PAWN, PS_B_KNIGHT, PS_B_BISHOP, PS_B_ROOK, PS_B_QUEEN, PS_KING, PS_NONE)

PIECE_SQUARE_INDEX = (_OURS + _THEIRS, _THEIRS + _OURS)


def _king_bucket(perspective: int, square: int) -> int:
    rank, file = divmod(square, 8)
    folded = min(file, 7 - file)
    row = 7 - rank if perspective == Color.WHITE else rank
    return (row * 4 + folded) * PS_NB


def _orient(perspective: int, square: int) -> int:
    on_queen_side = (square & 7) < 4
    if perspective == Color.WHITE:
        return SQ_H1 if on_queen_side else SQ_A1
    return SQ_H8 if on_queen_side else SQ_A8


KING_BUCKETS = tuple(tuple(_king_bucket(c, sq) for sq in range(SQUARE_NB)) for c in Color)
ORIENT_TBL = tuple(tuple(_orient(c, sq) for sq in range(SQUARE_NB)) for c in Color)


def make_piece(color: int, piece_type: int) -> int:
    """Encode a piece of ``color`` and ``piece_type``."""
    return (int(color) << 3) + int(piece_type)


def type_of(piece: int) -> PieceType:
    """Return the type of an encoded piece."""
    return PieceType(piece & 7)


def _color_of(piece: int) -> Color:
    return Color(piece >> 3)


def _check_square(square: int) -> None:
    if not 0 <= square < SQUARE_NB:
        raise ValueError(f"invalid square {square}")


def _check_piece(piece: int) -> None:
    if piece not in _VALID_PIECES:
        raise ValueError(f"invalid piece {piece}")


def _bits(bitboard: int) -> Iterator[int]:
    while bitboard:
        low = bitboard & -bitboard
        yield low.bit_length() - 1
        bitboard ^= low


@dataclass
class DirtyPiece:
    """The pieces touched by one move."""

    pc: int = NO_PIECE
    from_sq: int = SQ_NONE
    to: int = SQ_NONE
    remove_sq: int = SQ_NONE
    remove_pc: int = NO_PIECE
    add_sq: int = SQ_NONE
    add_pc: int = NO_PIECE


@dataclass
class Board:
    """Piece placement and side to move, as much of a position as evaluation needs."""

    placement: dict = field(default_factory=dict)
    side_to_move: Color = Color.WHITE

    def __post_init__(self) -> None:
        self.placement = dict(self.placement)
        for square, piece in self.placement.items():
            _check_square(square)
            _check_piece(piece)
        self.side_to_move = Color(self.side_to_move)

    def king_square(self, color: int) -> int:
        king = make_piece(color, PieceType.KING)
        for square, piece in self.placement.items():
            if piece == king:
                return square
        raise ValueError(f"no {Color(color).name.lower()} king on the board")

    def piece_on(self, square: int) -> int:
        _check_square(square)
        return self.placement.get(square, NO_PIECE)

    def pieces(self, color: int | None = None, piece_type: int | None = None) -> int:
        """Bitboard of the squares holding pieces of ``color`` and ``piece_type``."""
        bitboard = 0
        for square, piece in self.placement.items():
            if color is not None and _color_of(piece) != color:
                continue
            if piece_type is not None and type_of(piece) != piece_type:
                continue
            bitboard |= 1 << square
        return bitboard

    def piece_count(self) -> int:
        return len(self.placement)

    def remove_piece(self, square: int) -> int:
        _check_square(square)
        try:
            return self.placement.pop(square)
        except KeyError:
            raise ValueError(f"no piece on square {square}") from None

    def put_piece(self, piece: int, square: int) -> None:
        _check_square(square)
        _check_piece(piece)
        if square in self.placement:
            raise ValueError(f"square {square} is already occupied")
        self.placement[square] = piece


def make_index(perspective: int, square: int, piece: int, king_square: int) -> int:
    """Index of the feature for ``piece`` on ``square`` with the king on ``king_square``."""
    p = int(perspective)
    return (
        (square ^ ORIENT_TBL[p][king_square])
        + PIECE_SQUARE_INDEX[p][piece]
        + KING_BUCKETS[p][king_square]
    )


def active_indices(perspective: int, board: Board) -> list[int]:
    """Indices of all active features, in ascending square order."""
    ksq = board.king_square(perspective)
    return [
        make_index(perspective, square, board.piece_on(square), ksq)
        for square in _bits(board.pieces())
    ]


def changed_indices(
    perspective: int, king_square: int, dirty_piece: DirtyPiece
) -> tuple[list[int], list[int]]:
    """Return the (removed, added) feature indices for one move."""
    dp = dirty_piece
    removed = [make_index(perspective, dp.from_sq, dp.pc, king_square)]
    added = []
    if dp.to != SQ_NONE:
        added.append(make_index(perspective, dp.to, dp.pc, king_square))
    if dp.remove_sq != SQ_NONE:
        removed.append(make_index(perspective, dp.remove_sq, dp.remove_pc, king_square))
    if dp.add_sq != SQ_NONE:
        added.append(make_index(perspective, dp.add_sq, dp.add_pc, king_square))
    return removed, added


def requires_refresh(dirty_piece: DirtyPiece, perspective: int) -> bool:
    """Whether this move forces a full accumulator refresh for ``perspective``."""
    return dirty_piece.pc == make_piece(perspective, PieceType.KING)