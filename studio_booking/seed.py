"""Demo studio data for development and the command line demo."""

import logging

from studio_booking.engine.directory import ResourceDirectory
from studio_booking.schemas.resource_schema import Resource

logger = logging.getLogger(__name__)

DEMO_ARTISTS = [
    {
        "name": "John Ink",
        "specialty": "Traditional, Neo-Traditional",
        "bio": "Specializing in bold lines and vibrant colors, John has 10+ years "
               "of experience in traditional and neo-traditional styles.",
    },
    {
        "name": "Sarah Colors",
        "specialty": "Watercolor, Japanese",
        "bio": "Known for fluid watercolor techniques and intricate Japanese-inspired "
               "designs, with 8 years of professional experience.",
    },
    {
        "name": "Alex Rivera",
        "specialty": "Blackwork, Geometric",
        "bio": "Studio owner and lead artist specializing in precise blackwork and "
               "geometric designs. Over 15 years of experience.",
    },
]

DEMO_OFFERINGS = [
    {
        "name": "Small Tattoo Session",
        "description": "1-2 hour session for small designs up to 3 inches",
        "duration_minutes": 90,
        "price": 150,
    },
    {
        "name": "Medium Tattoo Session",
        "description": "3-5 hour session for medium-sized designs",
        "duration_minutes": 240,
        "price": 400,
    },
    {
        "name": "Large Tattoo Session",
        "description": "Full day session for large or complex designs",
        "duration_minutes": 480,
        "price": 800,
    },
]


def seed_demo_studio(directory: ResourceDirectory) -> list[Resource]:
    """Register the demo artists with the standard offerings.

    Artists already present (matched by name) are left as they are.
    """
    existing = {r.name: r for r in directory.list_resources()}
    resources = []
    for artist in DEMO_ARTISTS:
        if artist["name"] in existing:
            logger.info("Artist %s already exists", artist["name"])
            resources.append(existing[artist["name"]])
            continue
        resource = directory.register_resource(**artist)
        for offering in DEMO_OFFERINGS:
            directory.add_offering(resource.id, **offering)
        resources.append(resource)
    logger.info("Demo studio seeded with %d artists", len(resources))
    return resources
