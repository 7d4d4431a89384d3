"""Scoring, fraud, challenge, storage and notification tools"""
