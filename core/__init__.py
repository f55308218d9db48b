"""core/ -- Settings and the error taxonomy shared by every other package."""
