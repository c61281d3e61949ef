"""Single-instance lottery engine paying the pool to a winner drawn from verifiable randomness."""
