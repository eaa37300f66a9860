"""Context — device placement for an NDArray."""


class DeviceType:
    CPU = 1
    GPU = 2
    CPU_PINNED = 3

    _names = {1: 'cpu', 2: 'gpu', 3: 'cpu_pinned'}

    @staticmethod
    def name(device_type):
        return DeviceType._names.get(device_type, f'unknown({device_type})')


class Context:
    """Device kind plus device index. Plain value, copied freely."""

    __slots__ = ('device_type', 'device_id')

    def __init__(self, device_type=DeviceType.CPU, device_id=0):
        if device_type not in DeviceType._names:
            raise ValueError(f'unknown device type {device_type}')
        if device_id < 0:
            raise ValueError(f'device_id must be non-negative, got {device_id}')
        self.device_type = device_type
        self.device_id = device_id

    @staticmethod
    def cpu(device_id=0):
        return Context(DeviceType.CPU, device_id)

    @staticmethod
    def gpu(device_id=0):
        return Context(DeviceType.GPU, device_id)

    @staticmethod
    def cpu_pinned(device_id=0):
        return Context(DeviceType.CPU_PINNED, device_id)

    @staticmethod
    def default():
        return Context.cpu(0)

    def __eq__(self, other):
        if not isinstance(other, Context):
            return NotImplemented
        return (self.device_type, self.device_id) == (other.device_type, other.device_id)

    def __hash__(self):
        return hash((self.device_type, self.device_id))

    def __repr__(self):
        return f'{DeviceType.name(self.device_type)}({self.device_id})'
