"""sqlgate: least-privilege SQL execution gate for autonomous agents."""
