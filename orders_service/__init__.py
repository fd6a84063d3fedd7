"""Order lifecycle service: placement, reservation, transitions, payment and refunds."""
