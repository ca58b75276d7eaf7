"""Carewatch analysis services.

- conversation_analysis: live call analysis (sentiment, clinical patterns,
  repetition, coherence) and call-end caregiver summaries
"""
