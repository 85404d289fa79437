from campaigns.models import Campaign, City, Venue
from prize.models import Gift, GiftCityLimit, GiftVenueLimit, Participant


def make_campaign(slug: str = "summer", **kwargs) -> Campaign:
    kwargs.setdefault("name", slug.title())
    return Campaign.objects.create(slug=slug, **kwargs)


def make_city(name: str = "Lyon", username: str = None, password: str = "secret") -> City:
    city = City(name=name, username=username or name.lower())
    city.set_password(password)
    city.save()
    return city


def make_venue(city: City, campaign: Campaign = None, name: str = "Le Zinc") -> Venue:
    return Venue.objects.create(name=name, type="bar", city=city, campaign=campaign)


def make_gift(campaign: Campaign = None, name: str = "Tote bag", **kwargs) -> Gift:
    return Gift.objects.create(campaign=campaign, name=name, **kwargs)


def limit_city(gift: Gift, city: City, max_winners: int) -> GiftCityLimit:
    return GiftCityLimit.objects.create(gift=gift, city=city, max_winners=max_winners)


def limit_venue(gift: Gift, venue: Venue, max_winners: int) -> GiftVenueLimit:
    return GiftVenueLimit.objects.create(gift=gift, venue=venue, max_winners=max_winners)


def make_participant(campaign: Campaign = None, code: str = "ABC", **kwargs) -> Participant:
    venue = kwargs.get("venue")
    if venue is not None and "city" not in kwargs:
        kwargs["city"] = venue.city
    kwargs.setdefault("name", "Camille")
    kwargs.setdefault("agreed_to_terms", True)
    return Participant.objects.create(campaign=campaign, code=code, **kwargs)
