"""SiteWalker command-line interface."""
