"""
PURPOSE: Log-normal sampler for task durations and market conditions.

RESPONSIBILITIES:
- Convert an arithmetic mean and coefficient of variation into log-space parameters
- Draw log-normal variates with the Box-Muller transform from an injected random source
- Provide a vectorised variant over numpy generators for the simulation hot loops
- Single responsibility: only sampling, no I/O or aggregation
"""

import math

import numpy as np


def lognormal_params(mean, cv):
    """Compute log-space parameters (mu, sigma) from arithmetic mean and CV.

    sigma^2 = ln(1 + cv^2) and mu = ln(mean) - sigma^2 / 2, so that the
    resulting log-normal has E[X] = mean and std(X) / E[X] = cv.

    Args:
        mean: Expected value of the log-normal distribution (> 0)
        cv: Coefficient of variation (>= 0)

    Returns:
        tuple: (mu, sigma)

    Raises:
        ValueError: if mean is not finite and positive or cv is not finite and non-negative
    """
    if not (math.isfinite(mean) and mean > 0):
        raise ValueError(f"mean must be finite and positive, got {mean}")
    if not (math.isfinite(cv) and cv >= 0):
        raise ValueError(f"cv must be finite and non-negative, got {cv}")

    sigma2 = math.log1p(cv * cv)
    mu = math.log(mean) - 0.5 * sigma2
    return mu, math.sqrt(sigma2)


class LogNormalSampler:
    """Samples log-normal variates parameterised by arithmetic mean and CV."""

    @staticmethod
    def sample(mean, cv, random_source):
        """
        Draw one log-normal variate.

        Args:
            mean: Arithmetic mean of the distribution (> 0)
            cv: Coefficient of variation (>= 0). Zero returns ``mean`` exactly.
            random_source: Object with a ``random()`` method returning a float
                in [0, 1), e.g. ``numpy.random.Generator`` or ``random.Random``

        Returns:
            float: A positive sample
        """
        mu, sigma = lognormal_params(mean, cv)
        if sigma == 0.0:
            return float(mean)

        # 1 - U[0, 1) lies in (0, 1], keeping log(u1) finite
        u1 = 1.0 - float(random_source.random())
        u2 = float(random_source.random())
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return math.exp(mu + sigma * z)

    @staticmethod
    def sample_batch(mean, cv, size, rng):
        """
        Draw ``size`` independent log-normal variates with the same transform.

        Args:
            mean: Arithmetic mean (> 0)
            cv: Coefficient of variation (>= 0)
            size: Number of samples
            rng: numpy.random.Generator

        Returns:
            numpy array of shape (size,)
        """
        mu, sigma = lognormal_params(mean, cv)
        if sigma == 0.0:
            return np.full(size, float(mean))

        u1 = 1.0 - rng.random(size)
        u2 = rng.random(size)
        z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
        return np.exp(mu + sigma * z)


# Module-level convenience functions for direct import
def sample_lognormal(mean, cv, random_source=None):
    """Module-level wrapper for a single log-normal draw."""
    if random_source is None:
        random_source = np.random.default_rng()
    return LogNormalSampler.sample(mean, cv, random_source)


def sample_lognormal_batch(mean, cv, size, rng=None):
    """Module-level wrapper for vectorised log-normal draws."""
    if rng is None:
        rng = np.random.default_rng()
    return LogNormalSampler.sample_batch(mean, cv, size, rng)
