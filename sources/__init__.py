"""Remote collaborators: SPARQL service, Wikibase entity API, MediaWiki API."""

from .mediawiki import MediaWikiClient
from .sparql import HttpSparqlTransport, QueryExecutor, parse_binding, parse_sparql_json
from .wikibase import WikibaseEntityFetcher, chunked, parse_entity

__all__ = [
    "HttpSparqlTransport",
    "MediaWikiClient",
    "QueryExecutor",
    "WikibaseEntityFetcher",
    "chunked",
    "parse_binding",
    "parse_entity",
    "parse_sparql_json",
]
