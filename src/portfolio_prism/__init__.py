"""portfolio-prism: fund and crypto portfolio valuation across unreliable price sources."""

__version__ = "0.1.0"
