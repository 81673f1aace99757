# ================================================================================
# Fixed limits for snapback primer design
# ================================================================================

# Shortest primer accepted on either side of the amplicon
MIN_PRIMER_LEN = 12

# Bases required on each side of the SNV, both within the stem and between the
# SNV and a primer or sequence edge
SNV_BASE_BUFFER = 3

# Longest amplicon accepted
MAX_AMPLICON_LEN = 1000

# Shortest amplicon the command line accepts
MIN_AMPLICON_LEN = 33

# Smallest hairpin loop the loop models are applied to
MIN_LOOP_LEN = 6

# Blocking mismatches between the stem and the primer, and at the tail's 5' end
INNER_LOOP_MISMATCH_LEN = 2
TERMINAL_MISMATCH_LEN = 2

TM_DECIMAL_PLACES = 2

# Kelvin to Celsius conversion factor
T_KELVIN = 273.15

# In cal/(K·mol)
GAS_CONSTANT = 1.98720425864

# 37 °C in Kelvin, the reference temperature of tabulated free energies
T_REFERENCE = 310.15

# Strand concentration (µM) at which the bimolecular term vanishes (1 M);
# used for unimolecular hairpin melting
HAIRPIN_REFERENCE_CONC_UM = 1e6

# Whole-degree target Tm range the command line accepts
TARGET_TM_MIN = 40.0
TARGET_TM_MAX = 80.0
