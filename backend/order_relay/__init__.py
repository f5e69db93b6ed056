"""Shopify orders/create -> TikTok Events API purchase relay."""
