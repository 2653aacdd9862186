"""Dev dashboard -- finds local development projects and supervises the commands run against them."""
