"""seo_scout.crawler: fetcher, robots, throttle, frontier and the site crawler."""
