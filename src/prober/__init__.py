"""Template URL prober: bounded-concurrency existence checks over a two-id space."""
