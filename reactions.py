# reactions.py
"""
Optimistic state transitions for social actions.

Every transition comes with its inverse. The session store applies
``forward`` before the request goes out and replays ``inverse`` if it fails.
Both functions take a game dict and return a new dict; they never mutate.
"""

from typing import Callable, NamedTuple

REACTIONS = ('like', 'dislike')


class Transition(NamedTuple):
    forward: Callable[[dict], dict]
    inverse: Callable[[dict], dict]


def reaction_state(game: dict, user_id: str):
    """Returns (liked, disliked) for the user on this game."""
    return user_id in (game.get('likedBy') or []), user_id in (game.get('dislikedBy') or [])


def _with_reaction(game: dict, user_id: str, liked: bool, disliked: bool) -> dict:
    liked_by = [uid for uid in game.get('likedBy') or [] if uid != user_id]
    disliked_by = [uid for uid in game.get('dislikedBy') or [] if uid != user_id]
    if liked:
        liked_by.append(user_id)
    if disliked:
        disliked_by.append(user_id)
    return {
        **game,
        'likedBy': liked_by,
        'dislikedBy': disliked_by,
        'likes': len(liked_by),
        'dislikes': len(disliked_by),
    }


def toggle_reaction(game: dict, user_id: str, reaction: str) -> Transition:
    """
    Builds the transition for a like or dislike toggle by ``user_id``.

    Toggling one reaction on clears the opposite one in the same step, so
    counters always equal the sizes of the reaction sets.
    """
    if reaction not in REACTIONS:
        raise ValueError(f"Unknown reaction '{reaction}'")
    liked, disliked = reaction_state(game, user_id)
    if reaction == 'like':
        target = (not liked, False)
    else:
        target = (False, not disliked)
    return Transition(
        forward=lambda g: _with_reaction(g, user_id, *target),
        inverse=lambda g: _with_reaction(g, user_id, liked, disliked),
    )


def set_visibility(game: dict, is_public: bool) -> Transition:
    previous = bool(game.get('isPublic'))
    return Transition(
        forward=lambda g: {**g, 'isPublic': is_public},
        inverse=lambda g: {**g, 'isPublic': previous},
    )
