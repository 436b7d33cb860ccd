"""book_api — GraphQL resolver Lambda and domain services for the book tracker."""
