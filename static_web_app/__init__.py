"""Two-page static web server packaged for container deployment."""
