"""Portal access service."""
