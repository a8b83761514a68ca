"""Digital-goods storefront: catalog, checkout and stock fulfillment."""
