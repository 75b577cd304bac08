"""Foodie social backend: daily photo challenges, friends and real-time messaging."""
