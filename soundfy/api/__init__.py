"""HTTP surface: health probe and Shopify webhook receiver."""
