from typing import List

from geoquiz.models import Session


def score_current_round(session: Session) -> List[dict]:
    """Apply scoring for the current round and return the ranked results.

    Every roster player scores their free-radius adjusted distance, or the
    session's no-guess penalty when they did not guess. The score is added to
    the player's running total. Results are ordered closest first; ties keep
    roster order.
    """
    current = session.current_round
    if current is None:
        return []
    penalty = session.settings.penalty_km
    scored = []
    for player in session.players.values():
        guess = current.guesses.get(player.id)
        km = guess.adjusted_km if guess else penalty
        player.total_km += km
        scored.append((km, {
            'player_id': player.id,
            'name': player.name,
            'km': round(km, 1),
            'raw_km': round(guess.raw_km, 1) if guess else None,
            'total_km': round(player.total_km, 1),
            'guess': {'lat': guess.lat, 'lng': guess.lng} if guess else None,
        }))
    scored.sort(key=lambda item: item[0])
    results = [entry for _, entry in scored]

    session.history.append({
        'round': current.number,
        'city': current.target_dict(),
        'results': [{'player_id': r['player_id'], 'km': r['km']} for r in results],
    })
    return results


def leaderboard(session: Session) -> List[dict]:
    players = sorted(session.players.values(), key=lambda p: p.total_km)
    return [{'player_id': p.id, 'name': p.name, 'total_km': round(p.total_km, 1)} for p in players]
