"""Register table and payload types of the Output Expander."""

from .registers import REGISTERS, RegisterDescriptor, RegisterMap, WireType, resolve
from .flags import (
    AcquisitionMode,
    AuxiliaryInputs,
    DigitalOutputs,
    EnableFlag,
    ExpansionBoardType,
    MagneticEncoderReading,
    MagneticEncoderSampleRate,
    OpticalFlowDelta,
    PwmAndStimMapping,
    PwmChannels,
    StimChannels,
    TriggerSource,
)
