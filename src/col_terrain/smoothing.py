"""Elevation smoothing and gradient recomputation for synthesized profiles."""

DEFAULT_WEIGHTS = (0.25, 0.5, 0.25)


def smooth_elevations(
    elevations: list[float], weights: tuple[float, float, float] = DEFAULT_WEIGHTS
) -> list[float]:
    """Smooth elevation values with a 3-point weighted window.

    Each interior value becomes prev * w0 + current * w1 + next * w2, computed
    from the unsmoothed neighbours. The first and last values are left
    unchanged so the start and summit stay anchored.

    Returns a new list; the input is not modified.
    """
    if len(elevations) < 3:
        return list(elevations)

    w_prev, w_cur, w_next = weights
    smoothed = [elevations[0]]
    for i in range(1, len(elevations) - 1):
        smoothed.append(
            elevations[i - 1] * w_prev + elevations[i] * w_cur + elevations[i + 1] * w_next
        )
    smoothed.append(elevations[-1])
    return smoothed


def recompute_gradients(distances: list[float], elevations: list[float]) -> list[float | None]:
    """Local gradient in percent between each sample and the previous one.

    Distances are in km and elevations in meters, so
    (delta_elevation / delta_distance) / 10 is the percent grade.
    The first sample has no predecessor and gets None; zero-length steps give 0.0.
    """
    gradients: list[float | None] = [None] if distances else []
    for i in range(1, len(distances)):
        step_km = distances[i] - distances[i - 1]
        if step_km > 0:
            gradients.append((elevations[i] - elevations[i - 1]) / step_km / 10)
        else:
            gradients.append(0.0)
    return gradients
