"""Application services orchestrating the order-fulfillment core."""
