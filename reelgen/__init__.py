"""Photo/clip + music + avatar slideshow generator service."""
