"""
Backend package for the Echo API.

Tasks earn coins, coins buy themes and decorations, and finished tasks grow
the user's first plant. One core implementation runs against either a SQL
database or Firestore.
"""
