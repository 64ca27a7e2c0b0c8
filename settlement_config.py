# Shift Settlement Configuration

# Timezone shifts are closed out in
timezone = "US/Eastern"

# Tip out options offered on the check out screen (percent of sales)
busser_tipout_options = ["3.5", "2", "1", "0"]
bartender_tipout_options = ["2", "3", "4"]

# Declared tip options (percent of total sales)
declare_options = ["8", "12"]

# These are the percentages selected before the server picks one
BUSSER_PERCENTAGE = "3.5"
BARTENDER_PERCENTAGE = "2"
DECLARE_PERCENTAGE = "8"
