"""Extract TIM textures, PAK backgrounds, room data, game text and executable tables."""

__version__ = "0.1.0"