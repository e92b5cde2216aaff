"""
Ratings API - Tournament & Player Rating Service

Responsibilities:
- Player registry (players, per-format ratings, titles)
- Tournament lifecycle (approval, registration, rounds, results)
- Rating engine (Elo updates and rating history)
- Role-gated access for organizers, officers and admins
"""
